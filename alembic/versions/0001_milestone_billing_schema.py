"""milestone_billing_schema

Creates the collaborator tables (user, client, project, quotation, invoice,
payment, expense), the per-month invoice counter, and the two milestone
tables.  ``payment_milestone.invoice_id`` and ``invoice.payment_milestone_id``
reference each other, so the former FK is added after both tables exist.

Revision ID: 0001_milestone_billing_schema
Revises:
Create Date: 2025-01-15 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_milestone_billing_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_TS = sa.DateTime(timezone=True)
_MONEY = sa.Numeric(15, 2)


def upgrade() -> None:
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(100), nullable=False, unique=True),
        sa.Column('email', sa.String(200), nullable=False, unique=True),
        sa.Column('full_name', sa.String(300), nullable=True),
        sa.Column('role', sa.String(50), nullable=False, server_default='VIEWER'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', _TS, nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'client',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(300), nullable=False),
        sa.Column('email', sa.String(200), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('address', sa.String(1000), nullable=True),
        sa.Column('tax_id', sa.String(30), nullable=True),
    )

    op.create_table(
        'project',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('number', sa.String(50), nullable=False, unique=True),
        sa.Column('description', sa.String(1000), nullable=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('client.id'), nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='PLANNING'),
        sa.Column('start_date', _TS, nullable=True),
        sa.Column('end_date', _TS, nullable=True),
        sa.Column('estimated_budget', _MONEY, nullable=True),
    )

    op.create_table(
        'quotation',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('number', sa.String(50), nullable=False, unique=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('client.id'), nullable=False),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('project.id'), nullable=True),
        sa.Column('total_amount', _MONEY, nullable=False),
        sa.Column('payment_type', sa.String(30), nullable=False, server_default='FULL_PAYMENT'),
        sa.Column('status', sa.String(30), nullable=False, server_default='DRAFT'),
        sa.Column('terms', sa.Text(), nullable=True),
        sa.Column('created_at', _TS, nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'project_milestone',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('project.id'), nullable=False),
        sa.Column('milestone_number', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('name_id', sa.String(200), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('description_id', sa.Text(), nullable=True),
        sa.Column('planned_start_date', _TS, nullable=False),
        sa.Column('planned_end_date', _TS, nullable=False),
        sa.Column('actual_start_date', _TS, nullable=True),
        sa.Column('actual_end_date', _TS, nullable=True),
        sa.Column('planned_revenue', _MONEY, nullable=False, server_default='0'),
        sa.Column('recognized_revenue', _MONEY, nullable=False, server_default='0'),
        sa.Column('remaining_revenue', _MONEY, nullable=False, server_default='0'),
        sa.Column('estimated_cost', _MONEY, nullable=True),
        sa.Column('actual_cost', _MONEY, nullable=False, server_default='0'),
        sa.Column('priority', sa.String(20), nullable=False, server_default='MEDIUM'),
        sa.Column('completion_percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column(
            'predecessor_id', sa.Integer(),
            sa.ForeignKey('project_milestone.id'), nullable=True,
        ),
        sa.Column('delay_days', sa.Integer(), nullable=True),
        sa.Column('delay_reason', sa.Text(), nullable=True),
        sa.Column('deliverables', sa.JSON(), nullable=True),
        sa.Column('accepted_by', sa.String(200), nullable=True),
        sa.Column('accepted_at', _TS, nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('notes_id', sa.Text(), nullable=True),
        sa.Column('created_at', _TS, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', _TS, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('project_id', 'milestone_number', name='uq_project_milestone_number'),
    )
    op.create_index('ix_project_milestone_project_id', 'project_milestone', ['project_id'])
    op.create_index('ix_project_milestone_predecessor_id', 'project_milestone', ['predecessor_id'])

    op.create_table(
        'payment_milestone',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('quotation_id', sa.Integer(), sa.ForeignKey('quotation.id'), nullable=False),
        sa.Column('milestone_number', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('name_id', sa.String(200), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('description_id', sa.Text(), nullable=True),
        sa.Column('payment_percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('payment_amount', _MONEY, nullable=False),
        sa.Column('due_date', _TS, nullable=True),
        sa.Column('due_days_from_prev', sa.Integer(), nullable=True),
        sa.Column('deliverables', sa.JSON(), nullable=True),
        sa.Column(
            'project_milestone_id', sa.Integer(),
            sa.ForeignKey('project_milestone.id'), nullable=True,
        ),
        sa.Column('invoice_id', sa.Integer(), nullable=True, unique=True),
        sa.Column('created_at', _TS, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', _TS, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('quotation_id', 'milestone_number', name='uq_payment_milestone_number'),
    )
    op.create_index('ix_payment_milestone_quotation_id', 'payment_milestone', ['quotation_id'])

    op.create_table(
        'invoice',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('invoice_number', sa.String(30), nullable=False, unique=True),
        sa.Column('quotation_id', sa.Integer(), sa.ForeignKey('quotation.id'), nullable=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('project.id'), nullable=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('client.id'), nullable=True),
        sa.Column(
            'payment_milestone_id', sa.Integer(),
            sa.ForeignKey('payment_milestone.id'), nullable=True, unique=True,
        ),
        sa.Column('total_amount', _MONEY, nullable=False),
        sa.Column('due_date', _TS, nullable=False),
        sa.Column('materai_required', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('materai_amount', _MONEY, nullable=True),
        sa.Column('materai_applied', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(20), nullable=False, server_default='DRAFT'),
        sa.Column('terms', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('creation_date', _TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_invoice_project_id', 'invoice', ['project_id'])

    op.create_foreign_key(
        'fk_payment_milestone_invoice', 'payment_milestone', 'invoice',
        ['invoice_id'], ['id'],
    )

    op.create_table(
        'payment',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoice.id'), nullable=False),
        sa.Column('amount', _MONEY, nullable=False),
        sa.Column('payment_date', _TS, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('method', sa.String(50), nullable=True),
    )
    op.create_index('ix_payment_invoice_id', 'payment', ['invoice_id'])

    op.create_table(
        'expense',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('project.id'), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('amount', _MONEY, nullable=False),
        sa.Column('expense_date', _TS, nullable=False),
    )
    op.create_index('ix_expense_project_id', 'expense', ['project_id'])

    op.create_table(
        'invoice_counter',
        sa.Column('period', sa.String(6), primary_key=True),
        sa.Column('current_value', sa.BigInteger(), nullable=False, server_default='0'),
    )


def downgrade() -> None:
    op.drop_table('invoice_counter')
    op.drop_table('expense')
    op.drop_table('payment')
    op.drop_constraint('fk_payment_milestone_invoice', 'payment_milestone', type_='foreignkey')
    op.drop_table('invoice')
    op.drop_table('payment_milestone')
    op.drop_table('project_milestone')
    op.drop_table('quotation')
    op.drop_table('project')
    op.drop_table('client')
    op.drop_table('user')
