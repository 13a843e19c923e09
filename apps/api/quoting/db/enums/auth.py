"""Auth-related enums."""

from enum import Enum


class StaffRole(str, Enum):
    """
    Staff roles as an ordered capability set.

    - REVIEWER: Works the HITL review queue (claim, correct, disposition)
    - SENIOR_REVIEWER: Can take over a reviewer's claim
    - ADMIN: Claims escalated reviews, force-releases claims, edits rate data
    - SUPER_ADMIN: Can correct and disposition reviews claimed by others
    """

    REVIEWER = "reviewer"
    SENIOR_REVIEWER = "senior_reviewer"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def at_least(self, other: "StaffRole") -> bool:
        """True if this role grants everything `other` grants."""
        return self.rank >= other.rank

    def outranks(self, other: "StaffRole") -> bool:
        return self.rank > other.rank


_ROLE_RANK = {
    StaffRole.REVIEWER: 1,
    StaffRole.SENIOR_REVIEWER: 2,
    StaffRole.ADMIN: 3,
    StaffRole.SUPER_ADMIN: 4,
}
