"""Create whistleblowing schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Users are provisioned by the intranet; only the fields read here are modelled
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(50), nullable=False, server_default='employee'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'wb_categories',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'wb_reports',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('protocol_code', sa.String(32), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description_encrypted', sa.LargeBinary(), nullable=True),
        sa.Column('is_anonymous', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('reporter_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('manager_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column(
            'status',
            sa.Enum(
                'submitted', 'triage', 'in_review', 'need_info',
                'closed_substantiated', 'closed_unsubstantiated', 'closed_other',
                name='wb_report_status'
            ),
            nullable=False,
            server_default='submitted'
        ),
        sa.Column('policy_accepted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('policy_version', sa.String(32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('first_response_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_update', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['reporter_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['manager_id'], ['users.id']),
        sa.ForeignKeyConstraint(['category_id'], ['wb_categories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_wb_reports_protocol_code', 'wb_reports', ['protocol_code'], unique=True)
    op.create_index('ix_wb_reports_reporter_user_id', 'wb_reports', ['reporter_user_id'])
    op.create_index('ix_wb_reports_manager_id', 'wb_reports', ['manager_id'])
    op.create_index('ix_wb_reports_status', 'wb_reports', ['status'])
    op.create_index('ix_wb_reports_created_at', 'wb_reports', ['created_at'])
    op.create_index('ix_wb_reports_closed_at', 'wb_reports', ['closed_at'])
    op.create_index('ix_wb_reports_last_update', 'wb_reports', ['last_update'])

    op.create_table(
        'wb_messages',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('report_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            'sender_role',
            sa.Enum('reporter', 'manager', name='wb_sender_role'),
            nullable=False
        ),
        sa.Column('body_encrypted', sa.LargeBinary(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['report_id'], ['wb_reports.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_wb_messages_report_id', 'wb_messages', ['report_id'])
    op.create_index('ix_wb_messages_created_at', 'wb_messages', ['created_at'])

    op.create_table(
        'wb_attachments',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('report_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('filename', sa.String(255), nullable=False),
        sa.Column('mime_type', sa.String(255), nullable=False, server_default='application/octet-stream'),
        sa.Column('size_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('sha256', sa.String(64), nullable=False),
        sa.Column('storage_key', sa.String(255), nullable=True),
        sa.Column(
            'av_status',
            sa.Enum('pending', 'clean', 'quarantined', name='wb_av_status'),
            nullable=False,
            server_default='pending'
        ),
        sa.Column('uploaded_by_role', sa.String(20), nullable=False, server_default='reporter'),
        sa.Column('scanned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['report_id'], ['wb_reports.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_wb_attachments_report_id', 'wb_attachments', ['report_id'])
    op.create_index('ix_wb_attachments_sha256', 'wb_attachments', ['sha256'])

    op.create_table(
        'wb_reply_tokens',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('report_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('token_hash', sa.LargeBinary(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['report_id'], ['wb_reports.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_wb_reply_tokens_report_id', 'wb_reply_tokens', ['report_id'])
    op.create_index('ix_wb_reply_tokens_token_hash', 'wb_reply_tokens', ['token_hash'])

    # No foreign key on report_id: audit entries outlive a purged report
    op.create_table(
        'wb_audit',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('report_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            'actor_role',
            sa.Enum('reporter', 'manager', 'system', name='wb_actor_role'),
            nullable=False
        ),
        sa.Column('actor_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('meta', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_wb_audit_report_id', 'wb_audit', ['report_id'])
    op.create_index('ix_wb_audit_action', 'wb_audit', ['action'])
    op.create_index('ix_wb_audit_created_at', 'wb_audit', ['created_at'])


def downgrade() -> None:
    op.drop_table('wb_audit')
    op.drop_table('wb_reply_tokens')
    op.drop_table('wb_attachments')
    op.drop_table('wb_messages')
    op.drop_table('wb_reports')
    op.drop_table('wb_categories')
    op.drop_table('users')

    op.execute('DROP TYPE IF EXISTS wb_actor_role')
    op.execute('DROP TYPE IF EXISTS wb_av_status')
    op.execute('DROP TYPE IF EXISTS wb_sender_role')
    op.execute('DROP TYPE IF EXISTS wb_report_status')
