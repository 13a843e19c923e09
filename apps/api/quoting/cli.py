"""CLI tools for quoting administration."""

import click

from quoting.db.enums import StaffRole
from quoting.db.models import StaffUser
from quoting.db.session import SessionLocal
from quoting.services import (
    quote_lifecycle_service,
    rate_config_service,
    review_claim_service,
)


@click.group()
def cli():
    """Quoting CLI tools."""
    pass


@cli.command()
def seed_rates():
    """
    Insert the default rate reference data (languages, certifications,
    turnaround and delivery options, tax rates). Existing rows are kept.

    Example:
        python -m quoting.cli seed-rates
    """
    db = SessionLocal()
    try:
        created = rate_config_service.seed_reference_data(db)
        db.commit()
        if created:
            click.echo(f"✓ Created {created} reference row(s)")
        else:
            click.echo("✓ Reference data already up to date")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="Staff email address")
@click.option("--name", "display_name", required=True, help="Display name")
@click.option(
    "--role",
    type=click.Choice([r.value for r in StaffRole]),
    default=StaffRole.REVIEWER.value,
    show_default=True,
)
def create_staff(email: str, display_name: str, role: str):
    """
    Create a staff user.

    Example:
        python -m quoting.cli create-staff --email lee@example.com --name "Lee" --role admin
    """
    db = SessionLocal()
    try:
        existing = db.query(StaffUser).filter(StaffUser.email == email.lower()).first()
        if existing:
            click.echo(f"❌ Staff user {email} already exists")
            return

        staff = StaffUser(email=email.lower(), display_name=display_name, role=role)
        db.add(staff)
        db.commit()
        click.echo(f"✓ Created {role} {email}")
        click.echo(f"  ID: {staff.id}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise
    finally:
        db.close()


@cli.command()
def expire_quotes():
    """Mark quotes past their expiry date as expired."""
    db = SessionLocal()
    try:
        count = quote_lifecycle_service.expire_stale_quotes(db)
        db.commit()
        click.echo(f"✓ Expired {count} quote(s)")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise
    finally:
        db.close()


@cli.command()
def purge_tombstones():
    """Hard-delete cancelled quotes past the retention window."""
    db = SessionLocal()
    try:
        count = quote_lifecycle_service.purge_tombstoned_quotes(db)
        db.commit()
        click.echo(f"✓ Purged {count} quote(s)")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise
    finally:
        db.close()


@cli.command()
def release_idle_claims():
    """Return idle review claims to the queue (REVIEW_CLAIM_IDLE_HOURS)."""
    db = SessionLocal()
    try:
        count = review_claim_service.release_idle_claims(db)
        db.commit()
        click.echo(f"✓ Released {count} claim(s)")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    cli()
