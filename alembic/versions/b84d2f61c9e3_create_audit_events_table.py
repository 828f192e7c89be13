"""create_audit_events_table

Revision ID: b84d2f61c9e3
Revises: a3c91e5d7f20
Create Date: 2025-09-04 11:15:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'b84d2f61c9e3'
down_revision: Union[str, None] = 'a3c91e5d7f20'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

audit_event_type = postgresql.ENUM('TASK_CREATED', 'TASK_UPDATED', 'TASK_ARCHIVED', 'TASK_RESTORED',
                                   'TASK_UPDATE_CREATED', 'APPROVAL_REQUESTED', 'APPROVAL_APPROVED',
                                   'APPROVAL_REJECTED', 'INVOICE_LINKED', name='auditeventtype', create_type=False)
audit_entity_type = postgresql.ENUM('TASK', 'TASK_UPDATE', 'APPROVAL', 'INVOICE_LINK', name='auditentitytype',
                                    create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    audit_event_type.create(bind, checkfirst=True)
    audit_entity_type.create(bind, checkfirst=True)

    op.create_table('audit_events',
    sa.Column('seq', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('id', sa.String(), nullable=False),
    sa.Column('event_type', audit_event_type, nullable=False),
    sa.Column('entity_type', audit_entity_type, nullable=False),
    sa.Column('entity_id', sa.String(), nullable=False),
    sa.Column('user_id', sa.String(), nullable=False),
    sa.Column('user_name', sa.String(), nullable=True),
    sa.Column('site_id', sa.String(), nullable=True),
    sa.Column('action', sa.String(), nullable=False),
    sa.Column('old_values', sa.JSON(), nullable=True),
    sa.Column('new_values', sa.JSON(), nullable=True),
    sa.Column('metadata', sa.JSON(), nullable=True),
    sa.Column('timestamp', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('seq')
    )
    op.create_index(op.f('ix_audit_events_id'), 'audit_events', ['id'], unique=True)
    op.create_index(op.f('ix_audit_events_event_type'), 'audit_events', ['event_type'], unique=False)
    op.create_index(op.f('ix_audit_events_entity_id'), 'audit_events', ['entity_id'], unique=False)
    op.create_index(op.f('ix_audit_events_user_id'), 'audit_events', ['user_id'], unique=False)
    op.create_index(op.f('ix_audit_events_site_id'), 'audit_events', ['site_id'], unique=False)
    op.create_index(op.f('ix_audit_events_timestamp'), 'audit_events', ['timestamp'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_audit_events_timestamp'), table_name='audit_events')
    op.drop_index(op.f('ix_audit_events_site_id'), table_name='audit_events')
    op.drop_index(op.f('ix_audit_events_user_id'), table_name='audit_events')
    op.drop_index(op.f('ix_audit_events_entity_id'), table_name='audit_events')
    op.drop_index(op.f('ix_audit_events_event_type'), table_name='audit_events')
    op.drop_index(op.f('ix_audit_events_id'), table_name='audit_events')
    op.drop_table('audit_events')

    bind = op.get_bind()
    audit_entity_type.drop(bind, checkfirst=True)
    audit_event_type.drop(bind, checkfirst=True)
