"""initial schema: auth, staff, contracts, salaries, reviews, employes sync, queue

Revision ID: 4f1a9c2e7b10
Revises:
Create Date: 2025-11-03 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f1a9c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ---- auth / rbac ----
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=50), nullable=False, unique=True),
    )
    op.create_table(
        'permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=120), nullable=False, unique=True),
        sa.Column('name', sa.String(length=150), nullable=True),
    )
    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
    )
    op.create_table(
        'role_permissions',
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('permission_id', sa.Integer(), sa.ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True),
    )

    # ---- staff records ----
    op.create_table(
        'staff',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, unique=True),
        sa.Column('employes_id', sa.String(length=64), nullable=True, unique=True),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True, unique=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('location', sa.String(length=120), nullable=True),
        sa.Column('role_title', sa.String(length=120), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('is_intern', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('intern_year', sa.Integer(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('hours_per_week', sa.Numeric(5, 2), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_staff_status', 'staff', ['status'])
    op.create_index('ix_staff_location', 'staff', ['location'])

    op.create_table(
        'contracts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('staff_id', sa.Integer(), sa.ForeignKey('staff.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('contract_type', sa.String(length=20), nullable=False, server_default='fixed'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('chain_sequence', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('hours_per_week', sa.Numeric(5, 2), nullable=True),
        sa.Column('employes_employment_id', sa.String(length=64), nullable=True, unique=True),
        sa.Column('source', sa.String(length=20), nullable=False, server_default='manual'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('end_date IS NULL OR end_date >= start_date', name='ck_contract_dates'),
    )
    op.create_index('ix_contracts_staff_start', 'contracts', ['staff_id', 'start_date'])
    op.create_index('ix_contracts_end_date', 'contracts', ['end_date'])

    op.create_table(
        'salary_periods',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('staff_id', sa.Integer(), sa.ForeignKey('staff.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('valid_from', sa.Date(), nullable=False),
        sa.Column('valid_to', sa.Date(), nullable=True),
        sa.Column('hourly_wage', sa.Numeric(10, 2), nullable=True),
        sa.Column('monthly_wage', sa.Numeric(10, 2), nullable=True),
        sa.Column('yearly_wage', sa.Numeric(12, 2), nullable=True),
        sa.Column('cao_scale', sa.Integer(), nullable=True),
        sa.Column('cao_trede', sa.Integer(), nullable=True),
        sa.Column('source', sa.String(length=20), nullable=False, server_default='manual'),
        sa.Column('reason', sa.String(length=40), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('staff_id', 'valid_from', name='uq_salary_staff_valid_from'),
    )
    op.create_index('ix_salary_staff_open', 'salary_periods', ['staff_id', 'valid_to'])

    op.create_table(
        'staff_reviews',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('staff_id', sa.Integer(), sa.ForeignKey('staff.id', ondelete='CASCADE'), nullable=False),
        sa.Column('reviewer_user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('review_type', sa.String(length=20), nullable=False, server_default='yearly'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='scheduled'),
        sa.Column('scheduled_date', sa.Date(), nullable=True),
        sa.Column('review_date', sa.Date(), nullable=True),
        sa.Column('overall_score', sa.Numeric(3, 2), nullable=True),
        sa.Column('performance_level', sa.String(length=40), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_staff_reviews_staff_id', 'staff_reviews', ['staff_id'])

    # ---- employes.nl sync ----
    op.create_table(
        'employes_sync_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_type', sa.String(length=40), nullable=False, server_default='full_sync'),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='running'),
        sa.Column('source', sa.String(length=40), nullable=False, server_default='manual'),
        sa.Column('triggered_by', sa.String(length=120), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('total_records', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('successful_records', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed_records', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sync_details', sa.JSON(), nullable=True),
    )

    op.create_table(
        'employes_raw_data',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.String(length=64), nullable=False),
        sa.Column('endpoint', sa.String(length=40), nullable=False),
        sa.Column('record_key', sa.String(length=64), nullable=True),
        sa.Column('api_response', sa.JSON(), nullable=False),
        sa.Column('data_hash', sa.String(length=64), nullable=False),
        sa.Column('collected_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('last_verified_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('effective_from', sa.DateTime(), nullable=True),
        sa.Column('effective_to', sa.DateTime(), nullable=True),
        sa.Column('is_latest', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('session_id', sa.Integer(),
                  sa.ForeignKey('employes_sync_sessions.id', ondelete='SET NULL'), nullable=True),
    )
    op.create_index('ix_raw_latest', 'employes_raw_data', ['employee_id', 'endpoint', 'is_latest'])
    op.create_index('ix_raw_hash', 'employes_raw_data', ['employee_id', 'endpoint', 'data_hash'])

    op.create_table(
        'employes_changes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.String(length=64), nullable=False),
        sa.Column('endpoint', sa.String(length=40), nullable=False),
        sa.Column('field_path', sa.String(length=120), nullable=False),
        sa.Column('field_label', sa.String(length=80), nullable=True),
        sa.Column('old_value', sa.JSON(), nullable=True),
        sa.Column('new_value', sa.JSON(), nullable=True),
        sa.Column('change_type', sa.String(length=20), nullable=False, server_default='updated'),
        sa.Column('detected_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('is_significant', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index('ix_employes_changes_employee_id', 'employes_changes', ['employee_id'])

    op.create_table(
        'employes_timeline',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.String(length=64), nullable=False),
        sa.Column('event_type', sa.String(length=40), nullable=False),
        sa.Column('event_date', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('event_title', sa.String(length=200), nullable=False),
        sa.Column('event_description', sa.Text(), nullable=True),
        sa.Column('event_data', sa.JSON(), nullable=True),
        sa.Column('change_id', sa.Integer(),
                  sa.ForeignKey('employes_changes.id', ondelete='SET NULL'), nullable=True),
    )
    op.create_index('ix_employes_timeline_employee_id', 'employes_timeline', ['employee_id'])

    # ---- job queue ----
    op.create_table(
        'processing_queue',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('job_type', sa.String(length=40), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('error_details', sa.JSON(), nullable=True),
        sa.Column('processing_time_ms', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_queue_claim', 'processing_queue', ['job_type', 'status', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_queue_claim', table_name='processing_queue')
    op.drop_table('processing_queue')
    op.drop_index('ix_employes_timeline_employee_id', table_name='employes_timeline')
    op.drop_table('employes_timeline')
    op.drop_index('ix_employes_changes_employee_id', table_name='employes_changes')
    op.drop_table('employes_changes')
    op.drop_index('ix_raw_hash', table_name='employes_raw_data')
    op.drop_index('ix_raw_latest', table_name='employes_raw_data')
    op.drop_table('employes_raw_data')
    op.drop_table('employes_sync_sessions')
    op.drop_index('ix_staff_reviews_staff_id', table_name='staff_reviews')
    op.drop_table('staff_reviews')
    op.drop_index('ix_salary_staff_open', table_name='salary_periods')
    op.drop_table('salary_periods')
    op.drop_index('ix_contracts_end_date', table_name='contracts')
    op.drop_index('ix_contracts_staff_start', table_name='contracts')
    op.drop_table('contracts')
    op.drop_index('ix_staff_location', table_name='staff')
    op.drop_index('ix_staff_status', table_name='staff')
    op.drop_table('staff')
    op.drop_table('role_permissions')
    op.drop_table('user_roles')
    op.drop_table('permissions')
    op.drop_table('roles')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
