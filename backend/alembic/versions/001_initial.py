"""Initial migration

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None

ALERT_TYPES = (
    'NEXT_ACCOUNTS_DUE', 'NEXT_CONFIRMATION_STATEMENT_DUE', 'NEXT_VAT_DUE',
    'CORPORATION_TAX_DEADLINE', 'CLIENT_TASK',
)
TASK_STAGES = (
    'TO_DO', 'WAITING_ON_CLIENT', 'IN_PROGRESS', 'INTERNAL_REVIEW',
    'PENDING_CLIENT_APPROVAL', 'READY_TO_FILE', 'COMPLETED', 'ON_HOLD',
)


def upgrade() -> None:
    # Create clients table
    op.create_table(
        'clients',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('client_name', sa.String(255), nullable=False),
        sa.Column('client_email', sa.String(255), nullable=True),
        sa.Column('company_name', sa.String(255), nullable=True),
        sa.Column('automated_emails', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('next_accounts_due', sa.Date(), nullable=True),
        sa.Column('next_confirmation_statement_due', sa.Date(), nullable=True),
        sa.Column('next_vat_due', sa.Date(), nullable=True),
        sa.Column('corporation_tax_deadline', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    # Create client_tasks table
    op.create_table(
        'client_tasks',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('client_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('clients.id'), nullable=False, index=True),
        sa.Column('task_title', sa.String(500), nullable=False),
        sa.Column('task_description', sa.Text(), nullable=True),
        sa.Column('stage', sa.Enum(*TASK_STAGES, name='taskstage'), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('action_needed', sa.Enum('CREATE_ALERT', name='taskaction'), nullable=True),
        sa.Column('action_details', postgresql.JSONB, nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    # Create client_alerts table
    op.create_table(
        'client_alerts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('client_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('clients.id'), nullable=False, index=True),
        sa.Column('alert_type', sa.Enum(*ALERT_TYPES, name='alerttype'), nullable=False),
        sa.Column('alert_message', sa.Text(), nullable=True),
        sa.Column('days_before_due', sa.Integer(), nullable=False),
        sa.Column(
            'notification_preference',
            sa.Enum('SEND_DIRECT_TO_CLIENT', 'DRAFT_FOR_TEAM', name='notificationpreference'),
            nullable=False,
        ),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('source_task_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('client_tasks.id'), nullable=True),
        sa.Column('last_triggered_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    # At most one active alert per client per fixed category
    op.create_index(
        'uq_client_alerts_active_type',
        'client_alerts',
        ['client_id', 'alert_type'],
        unique=True,
        postgresql_where=sa.text("is_active AND alert_type <> 'CLIENT_TASK'"),
    )

    # Create client_alert_schedules table
    op.create_table(
        'client_alert_schedules',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('client_alert_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('client_alerts.id'), nullable=False, index=True),
        sa.Column('days_before_due', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('alert_message', sa.Text(), nullable=True),
        sa.Column('use_custom_message', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('client_alert_id', 'days_before_due', name='uq_alert_schedule_offset'),
    )

    # Create alert_templates table
    op.create_table(
        'alert_templates',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('alert_type', sa.String(100), nullable=False, unique=True),
        sa.Column('subject', sa.String(500), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('default_days_before_due', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    # Create drafted_reminders table
    op.create_table(
        'drafted_reminders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('client_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('clients.id'), nullable=False, index=True),
        sa.Column('client_alert_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('client_alerts.id'), nullable=False, index=True),
        sa.Column('recipient_email', sa.String(255), nullable=True),
        sa.Column('cc_email', sa.String(255), nullable=True),
        sa.Column('email_subject', sa.String(500), nullable=False),
        sa.Column('email_body', sa.Text(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('PENDING_REVIEW', 'APPROVED', 'SENT', 'DISCARDED', name='draftstatus'),
            nullable=False,
        ),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('drafted_reminders')
    op.drop_table('alert_templates')
    op.drop_table('client_alert_schedules')
    op.drop_index('uq_client_alerts_active_type', table_name='client_alerts')
    op.drop_table('client_alerts')
    op.drop_table('client_tasks')
    op.drop_table('clients')
    for enum_name in ('draftstatus', 'notificationpreference', 'alerttype', 'taskaction', 'taskstage'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
