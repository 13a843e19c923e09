"""Baseline migration - rate reference data, quotes, reviews and corrections

Revision ID: 0001_baseline
Revises: 
Create Date: 2026-10-18

Creates the full quoting schema: rate reference tables, staff users and
customers, quotes with document lines, review records, the correction
ledger and the quote activity log.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create quoting tables."""

    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')  # For gen_random_uuid()

    # ==========================================================================
    # Rate reference data
    # ==========================================================================
    op.execute('''
        CREATE TABLE languages (
            code VARCHAR(10) PRIMARY KEY,
            name VARCHAR(100) NOT NULL,
            multiplier NUMERIC(4, 2) NOT NULL DEFAULT 1.00
                CHECK (multiplier BETWEEN 1.0 AND 3.0),
            is_active BOOLEAN NOT NULL DEFAULT true,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE TABLE certification_types (
            code VARCHAR(50) PRIMARY KEY,
            name VARCHAR(100) NOT NULL,
            price NUMERIC(12, 2) NOT NULL DEFAULT 0 CHECK (price >= 0),
            is_active BOOLEAN NOT NULL DEFAULT true,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE TABLE turnaround_options (
            code VARCHAR(30) PRIMARY KEY,
            name VARCHAR(100) NOT NULL,
            fee_type VARCHAR(20) NOT NULL DEFAULT 'percentage',
            fee_value NUMERIC(10, 2) NOT NULL DEFAULT 0,
            estimated_days INTEGER NOT NULL DEFAULT 0,
            is_rush BOOLEAN NOT NULL DEFAULT false,
            is_default BOOLEAN NOT NULL DEFAULT false,
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    ''')
    op.execute('''
        CREATE TABLE delivery_options (
            code VARCHAR(30) PRIMARY KEY,
            name VARCHAR(100) NOT NULL,
            price NUMERIC(12, 2) NOT NULL DEFAULT 0,
            is_physical BOOLEAN NOT NULL DEFAULT false,
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    ''')
    op.execute('''
        CREATE TABLE tax_rates (
            region_code VARCHAR(10) PRIMARY KEY,
            region_name VARCHAR(100) NOT NULL,
            tax_name VARCHAR(50) NOT NULL,
            rate NUMERIC(7, 5) NOT NULL CHECK (rate >= 0 AND rate <= 1),
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    ''')

    # ==========================================================================
    # Staff and customers
    # ==========================================================================
    op.execute('''
        CREATE TABLE staff_users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(255) UNIQUE NOT NULL,
            display_name VARCHAR(255) NOT NULL,
            role VARCHAR(30) NOT NULL DEFAULT 'reviewer',
            is_active BOOLEAN NOT NULL DEFAULT true,
            token_version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE TABLE customers (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            full_name VARCHAR(255),
            email VARCHAR(255),
            phone VARCHAR(50),
            region_code VARCHAR(10),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX ix_customers_email ON customers(email)')
    op.execute('CREATE INDEX ix_customers_phone ON customers(phone)')

    # ==========================================================================
    # Quotes
    # ==========================================================================
    op.execute('''
        CREATE TABLE quotes (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            quote_number VARCHAR(20) UNIQUE NOT NULL,
            status VARCHAR(30) NOT NULL DEFAULT 'draft',
            processing_status VARCHAR(20) NOT NULL DEFAULT 'pending',
            customer_id UUID REFERENCES customers(id) ON DELETE SET NULL,
            created_by_staff_id UUID REFERENCES staff_users(id) ON DELETE SET NULL,
            is_manual_quote BOOLEAN NOT NULL DEFAULT false,
            source_language_code VARCHAR(10) NOT NULL REFERENCES languages(code),
            target_language_code VARCHAR(10),
            turnaround_code VARCHAR(30) NOT NULL DEFAULT 'standard',
            delivery_option_code VARCHAR(30),
            tax_region_code VARCHAR(10),
            discount_type VARCHAR(20),
            discount_value NUMERIC(10, 2),
            discount_reason TEXT,
            surcharge_type VARCHAR(20),
            surcharge_value NUMERIC(10, 2),
            surcharge_reason TEXT,
            base_subtotal NUMERIC(12, 2) NOT NULL DEFAULT 0,
            rush_fee NUMERIC(12, 2) NOT NULL DEFAULT 0,
            delivery_fee NUMERIC(12, 2) NOT NULL DEFAULT 0,
            discount_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
            surcharge_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
            subtotal NUMERIC(12, 2) NOT NULL DEFAULT 0,
            tax_rate NUMERIC(7, 5) NOT NULL DEFAULT 0,
            tax_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
            total NUMERIC(12, 2) NOT NULL DEFAULT 0,
            priced_at TIMESTAMPTZ,
            paid_amount NUMERIC(12, 2),
            paid_at TIMESTAMPTZ,
            payment_reference VARCHAR(255),
            expires_at TIMESTAMPTZ NOT NULL,
            deleted_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            version_id INTEGER NOT NULL,
            CHECK (total = subtotal + tax_amount)
        )
    ''')
    op.execute('CREATE INDEX idx_quotes_status_expires ON quotes(status, expires_at)')
    op.execute('CREATE INDEX idx_quotes_deleted ON quotes(deleted_at)')

    op.execute('''
        CREATE TABLE document_lines (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            quote_id UUID NOT NULL REFERENCES quotes(id) ON DELETE CASCADE,
            position INTEGER NOT NULL DEFAULT 0,
            filename VARCHAR(255),
            document_type VARCHAR(100),
            detected_language_code VARCHAR(10),
            word_count INTEGER CHECK (word_count >= 0),
            page_count INTEGER NOT NULL DEFAULT 1 CHECK (page_count >= 1),
            complexity VARCHAR(20) NOT NULL DEFAULT 'standard',
            complexity_multiplier NUMERIC(4, 2) NOT NULL DEFAULT 1.00,
            certification_type_code VARCHAR(50),
            analysis_status VARCHAR(20) NOT NULL DEFAULT 'pending',
            ai_document_type VARCHAR(100),
            ai_word_count INTEGER,
            ai_page_count INTEGER,
            ai_complexity VARCHAR(20),
            ocr_confidence DOUBLE PRECISION,
            language_confidence DOUBLE PRECISION,
            classification_confidence DOUBLE PRECISION,
            complexity_confidence DOUBLE PRECISION,
            analyzed_at TIMESTAMPTZ,
            complexity_multiplier_override NUMERIC(4, 2),
            billable_pages_override NUMERIC(8, 1),
            per_page_rate_override NUMERIC(12, 2),
            line_total_override NUMERIC(12, 2),
            auto_billable_pages NUMERIC(8, 1),
            billable_pages NUMERIC(8, 1) CHECK (billable_pages >= 0.1),
            auto_per_page_rate NUMERIC(12, 2),
            per_page_rate NUMERIC(12, 2),
            certification_fee NUMERIC(12, 2) NOT NULL DEFAULT 0,
            line_total NUMERIC(12, 2),
            resubmission_requested BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            version_id INTEGER NOT NULL
        )
    ''')
    op.execute('CREATE INDEX idx_document_lines_quote ON document_lines(quote_id, position)')

    # ==========================================================================
    # Review records
    # ==========================================================================
    op.execute('''
        CREATE TABLE review_records (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            quote_id UUID NOT NULL REFERENCES quotes(id) ON DELETE CASCADE,
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            trigger_reasons JSONB NOT NULL DEFAULT '[]'::jsonb,
            priority INTEGER NOT NULL DEFAULT 5,
            sla_deadline TIMESTAMPTZ,
            assigned_to UUID REFERENCES staff_users(id) ON DELETE SET NULL,
            claimed_at TIMESTAMPTZ,
            previous_assigned_to UUID,
            claim_overridden_at TIMESTAMPTZ,
            resolution_notes TEXT,
            rejection_reason TEXT,
            affected_document_ids JSONB,
            escalated_by UUID,
            escalated_at TIMESTAMPTZ,
            resolved_by UUID,
            resolved_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CHECK ((status = 'in_review') = (assigned_to IS NOT NULL))
        )
    ''')
    # Partial unique: at most one open review per quote
    op.execute('''
        CREATE UNIQUE INDEX uq_review_records_open_per_quote
        ON review_records (quote_id)
        WHERE status IN ('pending', 'in_review', 'escalated')
    ''')
    op.execute(
        'CREATE INDEX idx_review_records_queue ON review_records(status, priority, sla_deadline)'
    )
    op.execute('CREATE INDEX idx_review_records_assignee ON review_records(assigned_to)')

    # ==========================================================================
    # Correction ledger (append-only)
    # ==========================================================================
    op.execute('''
        CREATE TABLE corrections (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            quote_id UUID NOT NULL REFERENCES quotes(id) ON DELETE CASCADE,
            review_id UUID REFERENCES review_records(id) ON DELETE CASCADE,
            document_line_id UUID NOT NULL REFERENCES document_lines(id) ON DELETE CASCADE,
            field VARCHAR(30) NOT NULL,
            original_value TEXT,
            corrected_value TEXT,
            reason TEXT,
            submit_to_knowledge_base BOOLEAN NOT NULL DEFAULT false,
            knowledge_base_comment TEXT,
            actor_staff_id UUID NOT NULL REFERENCES staff_users(id) ON DELETE RESTRICT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute(
        'CREATE INDEX idx_corrections_line_field ON corrections(document_line_id, field, created_at)'
    )
    op.execute('CREATE INDEX idx_corrections_review ON corrections(review_id)')

    # ==========================================================================
    # Activity log
    # ==========================================================================
    op.execute('''
        CREATE TABLE quote_activity_log (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            quote_id UUID NOT NULL REFERENCES quotes(id) ON DELETE CASCADE,
            activity_type VARCHAR(50) NOT NULL,
            actor_staff_id UUID REFERENCES staff_users(id) ON DELETE SET NULL,
            details JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute(
        'CREATE INDEX idx_quote_activity_quote_time ON quote_activity_log(quote_id, created_at)'
    )


def downgrade() -> None:
    """Drop all quoting tables."""

    # Drop tables in reverse order (respecting foreign keys)
    op.execute('DROP TABLE IF EXISTS quote_activity_log')
    op.execute('DROP TABLE IF EXISTS corrections')
    op.execute('DROP TABLE IF EXISTS review_records')
    op.execute('DROP TABLE IF EXISTS document_lines')
    op.execute('DROP TABLE IF EXISTS quotes')
    op.execute('DROP TABLE IF EXISTS customers')
    op.execute('DROP TABLE IF EXISTS staff_users')
    op.execute('DROP TABLE IF EXISTS tax_rates')
    op.execute('DROP TABLE IF EXISTS delivery_options')
    op.execute('DROP TABLE IF EXISTS turnaround_options')
    op.execute('DROP TABLE IF EXISTS certification_types')
    op.execute('DROP TABLE IF EXISTS languages')
