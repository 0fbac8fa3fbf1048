"""Baseline migration - accounts, listings, enquiries, audit trail

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18

Creates the tables owned by the listing API: users, properties (the slice
enquiries read), enquiries and their notes, the DPDPA audit log, the
notification ledger and global system settings.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create listing API tables."""

    # ==========================================================================
    # Users
    # ==========================================================================
    op.execute('''
        CREATE TABLE users (
            id SERIAL PRIMARY KEY,
            uuid VARCHAR(36) UNIQUE NOT NULL,
            name VARCHAR(255) NOT NULL,
            email VARCHAR(255) UNIQUE,
            phone VARCHAR(20) UNIQUE,
            password_hash VARCHAR(255),
            user_type VARCHAR(20) NOT NULL DEFAULT 'user'
                CHECK (user_type IN ('user', 'agent', 'admin')),
            status VARCHAR(30) NOT NULL DEFAULT 'pending_verification'
                CHECK (status IN ('active', 'inactive', 'suspended', 'pending_verification')),
            email_verified_at TIMESTAMPTZ,
            phone_verified_at TIMESTAMPTZ,
            email_verification_token VARCHAR(255) UNIQUE,
            phone_verification_code VARCHAR(10),
            is_buyer BOOLEAN NOT NULL DEFAULT true,
            is_seller BOOLEAN NOT NULL DEFAULT false,
            license_number VARCHAR(100) UNIQUE,
            agency_name VARCHAR(255),
            commission_rate NUMERIC(5, 2),
            experience_years INTEGER,
            specialization VARCHAR(255),
            agent_bio TEXT,
            agent_rating NUMERIC(3, 2),
            token_version INTEGER NOT NULL DEFAULT 1,
            last_login_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_users_type_status ON users(user_type, status)')

    # ==========================================================================
    # Properties
    # ==========================================================================
    op.execute('''
        CREATE TABLE properties (
            id SERIAL PRIMARY KEY,
            title VARCHAR(255) NOT NULL,
            property_type VARCHAR(50),
            price NUMERIC(15, 2),
            city VARCHAR(100),
            status VARCHAR(30) NOT NULL DEFAULT 'active',
            inquiries_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    # ==========================================================================
    # Enquiries
    # ==========================================================================
    op.execute('''
        CREATE TABLE enquiries (
            id SERIAL PRIMARY KEY,
            ticket_number VARCHAR(50) UNIQUE NOT NULL,
            user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            name VARCHAR(255) NOT NULL,
            email VARCHAR(255) NOT NULL,
            phone VARCHAR(20) NOT NULL,
            requirements TEXT NOT NULL,
            account_creation_offered BOOLEAN NOT NULL DEFAULT false,
            account_created_during_enquiry BOOLEAN NOT NULL DEFAULT false,
            property_id INTEGER REFERENCES properties(id) ON DELETE SET NULL,
            property_title VARCHAR(255),
            property_price VARCHAR(100),
            source VARCHAR(100) NOT NULL DEFAULT 'website',
            page_url TEXT,
            user_agent TEXT,
            status VARCHAR(20) NOT NULL DEFAULT 'new'
                CHECK (status IN ('new', 'assigned', 'in_progress', 'resolved', 'closed')),
            priority VARCHAR(20) NOT NULL DEFAULT 'medium'
                CHECK (priority IN ('low', 'medium', 'high', 'urgent')),
            assigned_to INTEGER REFERENCES users(id) ON DELETE SET NULL,
            first_response_at TIMESTAMPTZ,
            resolved_at TIMESTAMPTZ,
            resolution_notes TEXT,
            customer_satisfaction_rating INTEGER,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_enquiries_csat_range CHECK (
                customer_satisfaction_rating IS NULL
                OR customer_satisfaction_rating BETWEEN 1 AND 5
            )
        )
    ''')
    op.execute('CREATE INDEX idx_enquiries_assignee_status ON enquiries(assigned_to, status)')
    op.execute('CREATE INDEX idx_enquiries_user_created ON enquiries(user_id, created_at)')
    op.execute('CREATE INDEX idx_enquiries_property ON enquiries(property_id)')
    op.execute('CREATE INDEX idx_enquiries_created ON enquiries(created_at)')

    op.execute('''
        CREATE TABLE enquiry_notes (
            id SERIAL PRIMARY KEY,
            enquiry_id INTEGER NOT NULL REFERENCES enquiries(id) ON DELETE CASCADE,
            user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            note TEXT NOT NULL,
            note_type VARCHAR(30) NOT NULL DEFAULT 'internal'
                CHECK (note_type IN ('internal', 'client_communication', 'system', 'follow_up_reminder')),
            communication_method VARCHAR(20),
            next_follow_up_date DATE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_enquiry_notes_enquiry_created ON enquiry_notes(enquiry_id, created_at)')
    op.execute('CREATE INDEX idx_enquiry_notes_type ON enquiry_notes(note_type)')

    # ==========================================================================
    # Audit log (DPDPA)
    # ==========================================================================
    op.execute('''
        CREATE TABLE audit_logs (
            id SERIAL PRIMARY KEY,
            user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            action VARCHAR(100) NOT NULL,
            table_name VARCHAR(100) NOT NULL,
            record_id INTEGER,
            previous_values TEXT,
            new_values TEXT,
            ip_address VARCHAR(45),
            user_agent VARCHAR(500),
            description TEXT,
            severity VARCHAR(20) NOT NULL DEFAULT 'low'
                CHECK (severity IN ('low', 'medium', 'high', 'critical')),
            lawful_purpose VARCHAR(40) NOT NULL
                CHECK (lawful_purpose IN ('legitimate_interest', 'legal_obligation', 'contract_performance')),
            data_subject_notified BOOLEAN NOT NULL DEFAULT false,
            retention_expires_at TIMESTAMPTZ NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_audit_table_record ON audit_logs(table_name, record_id)')
    op.execute('CREATE INDEX idx_audit_user_created ON audit_logs(user_id, created_at)')
    op.execute('CREATE INDEX idx_audit_retention ON audit_logs(retention_expires_at)')
    op.execute('CREATE INDEX idx_audit_action ON audit_logs(action)')

    # ==========================================================================
    # Notification ledger
    # ==========================================================================
    op.execute('''
        CREATE TABLE notification_ledger (
            id SERIAL PRIMARY KEY,
            template VARCHAR(50) NOT NULL,
            enquiry_id INTEGER REFERENCES enquiries(id) ON DELETE SET NULL,
            user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            created_by_admin_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            email_sent BOOLEAN NOT NULL DEFAULT false,
            email_error TEXT,
            email_message_id VARCHAR(255),
            email_sent_at TIMESTAMPTZ,
            sms_sent BOOLEAN NOT NULL DEFAULT false,
            sms_error TEXT,
            sms_message_id VARCHAR(255),
            sms_sent_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_notification_ledger_enquiry ON notification_ledger(enquiry_id)')
    op.execute('CREATE INDEX idx_notification_ledger_user ON notification_ledger(user_id, created_at)')

    # ==========================================================================
    # System settings
    # ==========================================================================
    op.execute('''
        CREATE TABLE system_settings (
            id SERIAL PRIMARY KEY,
            setting_key VARCHAR(255) UNIQUE NOT NULL,
            setting_value TEXT,
            setting_type VARCHAR(20) NOT NULL DEFAULT 'string'
                CHECK (setting_type IN ('string', 'boolean', 'number', 'json')),
            description TEXT,
            is_public BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        INSERT INTO system_settings (setting_key, setting_value, setting_type, description)
        VALUES ('auto_assign_agents', 'false', 'boolean',
                'Route new enquiries to the best-ranked available agent')
    ''')


def downgrade() -> None:
    """Drop listing API tables."""
    op.execute('DROP TABLE IF EXISTS system_settings CASCADE')
    op.execute('DROP TABLE IF EXISTS notification_ledger CASCADE')
    op.execute('DROP TABLE IF EXISTS audit_logs CASCADE')
    op.execute('DROP TABLE IF EXISTS enquiry_notes CASCADE')
    op.execute('DROP TABLE IF EXISTS enquiries CASCADE')
    op.execute('DROP TABLE IF EXISTS properties CASCADE')
    op.execute('DROP TABLE IF EXISTS users CASCADE')
