"""Create companies, associates, jobs, job_assignments and opt_info

Revision ID: 0f1e2d3c4b5a
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = '0f1e2d3c4b5a'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'companies',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('company_name', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=20), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'associates',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('first_name', sa.String(length=255), nullable=False),
        sa.Column('last_name', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=20), nullable=True),
        sa.Column('email_address', sa.String(length=255), nullable=True),
        sa.Column('sms_opt_out', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_associates_phone_number', 'associates', ['phone_number'])
    op.create_index('ix_associates_company', 'associates', ['company_id'])

    op.create_table(
        'jobs',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('job_title', sa.String(length=255), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'job_assignments',
        sa.Column('job_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('associate_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.String(length=64), nullable=True),
        sa.Column('num_reminders', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_reminder_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_confirmation_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmation_status', sa.String(length=32), server_default='Unconfirmed', nullable=False),
        sa.CheckConstraint('num_reminders >= 0', name='ck_job_assignments_num_reminders'),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['associate_id'], ['associates.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('job_id', 'associate_id'),
    )
    op.create_index('ix_job_assignments_work_date', 'job_assignments', ['work_date', 'num_reminders'])
    op.create_index('ix_job_assignments_associate_date', 'job_assignments', ['associate_id', 'work_date'])

    op.create_table(
        'opt_info',
        sa.Column('associate_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('first_reminder_opt_out', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('first_sms_opt_out', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('reminder_opt_out_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sms_opt_out_time', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['associate_id'], ['associates.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('associate_id'),
    )


def downgrade() -> None:
    op.drop_table('opt_info')
    op.drop_index('ix_job_assignments_associate_date', table_name='job_assignments')
    op.drop_index('ix_job_assignments_work_date', table_name='job_assignments')
    op.drop_table('job_assignments')
    op.drop_table('jobs')
    op.drop_index('ix_associates_company', table_name='associates')
    op.drop_index('ix_associates_phone_number', table_name='associates')
    op.drop_table('associates')
    op.drop_table('companies')
