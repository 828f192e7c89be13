"""create_task_workflow_tables

Revision ID: a3c91e5d7f20
Revises:
Create Date: 2025-09-04 09:30:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'a3c91e5d7f20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

task_status = postgresql.ENUM('PLANNED', 'IN_PROGRESS', 'ON_HOLD', 'COMPLETED', 'CANCELLED',
                              name='taskstatus', create_type=False)
task_priority = postgresql.ENUM('LOW', 'MEDIUM', 'HIGH', 'CRITICAL', name='taskpriority', create_type=False)
task_category = postgresql.ENUM('GYPSUM', 'MEP', 'CIVIL', 'PLUMBING', 'ELECTRICAL', 'FINISHING', 'LANDSCAPING',
                                'OTHER', name='taskcategory', create_type=False)
approval_level = postgresql.ENUM('ENGINEER', 'SITE_MANAGER', 'PROJECT_MANAGER', name='approvallevel',
                                 create_type=False)
approval_status = postgresql.ENUM('PENDING', 'APPROVED', 'REJECTED', name='approvalstatus', create_type=False)
invoice_status = postgresql.ENUM('DRAFT', 'SENT', 'PAID', 'OVERDUE', 'CANCELLED', name='invoicestatus',
                                 create_type=False)

ENUM_TYPES = (task_status, task_priority, task_category, approval_level, approval_status, invoice_status)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    op.create_table('sites',
    sa.Column('id', sa.String(), nullable=False),
    sa.Column('name', sa.String(), nullable=False),
    sa.Column('active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sites_id'), 'sites', ['id'], unique=False)

    op.create_table('employees',
    sa.Column('id', sa.String(), nullable=False),
    sa.Column('first_name', sa.String(), nullable=False),
    sa.Column('last_name', sa.String(), nullable=False),
    sa.Column('position', sa.String(), nullable=False),
    sa.Column('email', sa.String(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_employees_id'), 'employees', ['id'], unique=False)

    op.create_table('invoices',
    sa.Column('id', sa.String(), nullable=False),
    sa.Column('client_id', sa.String(), nullable=False),
    sa.Column('site_id', sa.String(), nullable=False),
    sa.Column('title', sa.String(length=200), nullable=False),
    sa.Column('total', sa.Float(), nullable=False),
    sa.Column('paid', sa.Float(), nullable=False),
    sa.Column('balance', sa.Float(), nullable=False),
    sa.Column('currency', sa.String(), nullable=False),
    sa.Column('due_date', sa.DateTime(), nullable=True),
    sa.Column('status', invoice_status, nullable=False),
    sa.Column('created_by', sa.String(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_invoices_id'), 'invoices', ['id'], unique=False)
    op.create_index(op.f('ix_invoices_site_id'), 'invoices', ['site_id'], unique=False)

    op.create_table('tasks',
    sa.Column('id', sa.String(), nullable=False),
    sa.Column('site_id', sa.String(), nullable=False),
    sa.Column('code', sa.String(length=20), nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('description', sa.Text(), nullable=False),
    sa.Column('category', task_category, nullable=False),
    sa.Column('status', task_status, nullable=False),
    sa.Column('progress', sa.Integer(), nullable=False),
    sa.Column('start_date', sa.DateTime(), nullable=True),
    sa.Column('expected_completion_date', sa.DateTime(), nullable=True),
    sa.Column('actual_completion_date', sa.DateTime(), nullable=True),
    sa.Column('location', sa.String(length=200), nullable=True),
    sa.Column('manpower', sa.Integer(), nullable=False),
    sa.Column('executor_id', sa.String(), nullable=True),
    sa.Column('supervisor_id', sa.String(), nullable=True),
    sa.Column('approver_id', sa.String(), nullable=True),
    sa.Column('priority', task_priority, nullable=False),
    sa.Column('billable', sa.Boolean(), nullable=False),
    sa.Column('budget_amount', sa.Float(), nullable=True),
    sa.Column('cost_to_date', sa.Float(), nullable=False),
    sa.Column('attachments', sa.JSON(), nullable=False),
    sa.Column('archived', sa.Boolean(), nullable=False),
    sa.Column('created_by', sa.String(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['site_id'], ['sites.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('site_id', 'code', name='uq_tasks_site_code')
    )
    op.create_index(op.f('ix_tasks_id'), 'tasks', ['id'], unique=False)
    op.create_index(op.f('ix_tasks_site_id'), 'tasks', ['site_id'], unique=False)
    op.create_index(op.f('ix_tasks_status'), 'tasks', ['status'], unique=False)
    op.create_index(op.f('ix_tasks_executor_id'), 'tasks', ['executor_id'], unique=False)
    op.create_index(op.f('ix_tasks_supervisor_id'), 'tasks', ['supervisor_id'], unique=False)
    op.create_index(op.f('ix_tasks_archived'), 'tasks', ['archived'], unique=False)

    op.create_table('task_updates',
    sa.Column('id', sa.String(), nullable=False),
    sa.Column('task_id', sa.String(), nullable=False),
    sa.Column('timestamp', sa.DateTime(), nullable=False),
    sa.Column('progress_delta', sa.Integer(), nullable=False),
    sa.Column('progress_after', sa.Integer(), nullable=False),
    sa.Column('note', sa.Text(), nullable=False),
    sa.Column('manpower', sa.Integer(), nullable=True),
    sa.Column('location', sa.String(length=200), nullable=True),
    sa.Column('executed_by_id', sa.String(), nullable=True),
    sa.Column('entered_by_id', sa.String(), nullable=False),
    sa.Column('status_change', task_status, nullable=True),
    sa.Column('attachments', sa.JSON(), nullable=False),
    sa.Column('issues', sa.JSON(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['task_id'], ['tasks.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_task_updates_id'), 'task_updates', ['id'], unique=False)
    op.create_index(op.f('ix_task_updates_task_id'), 'task_updates', ['task_id'], unique=False)

    op.create_table('task_approvals',
    sa.Column('id', sa.String(), nullable=False),
    sa.Column('task_id', sa.String(), nullable=False),
    sa.Column('level', approval_level, nullable=False),
    sa.Column('status', approval_status, nullable=False),
    sa.Column('approved_by_id', sa.String(), nullable=True),
    sa.Column('approved_at', sa.DateTime(), nullable=True),
    sa.Column('remark', sa.String(length=500), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['task_id'], ['tasks.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('task_id', 'level', name='uq_task_approvals_task_level')
    )
    op.create_index(op.f('ix_task_approvals_id'), 'task_approvals', ['id'], unique=False)
    op.create_index(op.f('ix_task_approvals_task_id'), 'task_approvals', ['task_id'], unique=False)
    op.create_index(op.f('ix_task_approvals_status'), 'task_approvals', ['status'], unique=False)

    op.create_table('task_invoice_links',
    sa.Column('id', sa.String(), nullable=False),
    sa.Column('task_id', sa.String(), nullable=False),
    sa.Column('invoice_id', sa.String(), nullable=False),
    sa.Column('amount_billed', sa.Float(), nullable=False),
    sa.Column('amount_paid', sa.Float(), nullable=False),
    sa.Column('balance', sa.Float(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['task_id'], ['tasks.id'], ),
    sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_task_invoice_links_id'), 'task_invoice_links', ['id'], unique=False)
    op.create_index(op.f('ix_task_invoice_links_task_id'), 'task_invoice_links', ['task_id'], unique=False)
    op.create_index(op.f('ix_task_invoice_links_invoice_id'), 'task_invoice_links', ['invoice_id'], unique=False)

    op.create_table('site_task_counters',
    sa.Column('site_id', sa.String(), nullable=False),
    sa.Column('last_sequence', sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(['site_id'], ['sites.id'], ),
    sa.PrimaryKeyConstraint('site_id')
    )


def downgrade() -> None:
    op.drop_table('site_task_counters')
    op.drop_index(op.f('ix_task_invoice_links_invoice_id'), table_name='task_invoice_links')
    op.drop_index(op.f('ix_task_invoice_links_task_id'), table_name='task_invoice_links')
    op.drop_index(op.f('ix_task_invoice_links_id'), table_name='task_invoice_links')
    op.drop_table('task_invoice_links')
    op.drop_index(op.f('ix_task_approvals_status'), table_name='task_approvals')
    op.drop_index(op.f('ix_task_approvals_task_id'), table_name='task_approvals')
    op.drop_index(op.f('ix_task_approvals_id'), table_name='task_approvals')
    op.drop_table('task_approvals')
    op.drop_index(op.f('ix_task_updates_task_id'), table_name='task_updates')
    op.drop_index(op.f('ix_task_updates_id'), table_name='task_updates')
    op.drop_table('task_updates')
    op.drop_index(op.f('ix_tasks_archived'), table_name='tasks')
    op.drop_index(op.f('ix_tasks_supervisor_id'), table_name='tasks')
    op.drop_index(op.f('ix_tasks_executor_id'), table_name='tasks')
    op.drop_index(op.f('ix_tasks_status'), table_name='tasks')
    op.drop_index(op.f('ix_tasks_site_id'), table_name='tasks')
    op.drop_index(op.f('ix_tasks_id'), table_name='tasks')
    op.drop_table('tasks')
    op.drop_index(op.f('ix_invoices_site_id'), table_name='invoices')
    op.drop_index(op.f('ix_invoices_id'), table_name='invoices')
    op.drop_table('invoices')
    op.drop_index(op.f('ix_employees_id'), table_name='employees')
    op.drop_table('employees')
    op.drop_index(op.f('ix_sites_id'), table_name='sites')
    op.drop_table('sites')

    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
