"""create users, transactions, holding snapshots and portfolio value tables

Revision ID: 1c7e2f9a4b10
Revises:
Create Date: 2026-10-18 09:00:00.000000+00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '1c7e2f9a4b10'
down_revision = None
branch_labels = None
depends_on = None

transaction_type = postgresql.ENUM('buy', 'sell', name='transaction_type', create_type=False)


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_superuser', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_anonymous', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    # Create transactions table
    transaction_type.create(op.get_bind(), checkfirst=True)
    op.create_table(
        'transactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.String(length=100), nullable=False),
        sa.Column('asset_symbol', sa.String(length=20), nullable=False),
        sa.Column('asset_name', sa.String(length=100), nullable=False),
        sa.Column('asset_icon_url', sa.String(length=500), nullable=False, server_default=''),
        sa.Column('transaction_type', transaction_type, nullable=False),
        sa.Column('quantity', sa.Numeric(28, 8), nullable=False),
        sa.Column('unit_price', sa.Numeric(28, 8), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('venue', sa.String(length=100), nullable=False, server_default='Unknown'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.CheckConstraint('quantity > 0', name='ck_transactions_quantity_positive'),
        sa.CheckConstraint('unit_price > 0', name='ck_transactions_unit_price_positive'),
    )
    op.create_index('ix_transactions_id', 'transactions', ['id'])
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_asset_id', 'transactions', ['asset_id'])
    op.create_index('ix_transactions_occurred_at', 'transactions', ['occurred_at'])
    op.create_index('ix_transactions_user_asset', 'transactions', ['user_id', 'asset_id'])

    # Create holding_snapshots table
    op.create_table(
        'holding_snapshots',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.String(length=100), nullable=False),
        sa.Column('asset_symbol', sa.String(length=20), nullable=False),
        sa.Column('asset_name', sa.String(length=100), nullable=False),
        sa.Column('asset_icon_url', sa.String(length=500), nullable=False, server_default=''),
        sa.Column('quantity_held', sa.Numeric(28, 8), nullable=False),
        sa.Column('total_invested', sa.Numeric(28, 8), nullable=False),
        sa.Column('average_unit_cost', sa.Numeric(28, 8), nullable=False),
        sa.Column('transaction_count', sa.Integer(), nullable=False),
        sa.Column('last_transaction_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('venue', sa.String(length=100), nullable=False, server_default='Unknown'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'asset_id', name='uq_holding_snapshots_user_asset'),
        sa.CheckConstraint('quantity_held > 0', name='ck_holding_snapshots_quantity_positive'),
    )
    op.create_index('ix_holding_snapshots_id', 'holding_snapshots', ['id'])
    op.create_index('ix_holding_snapshots_user_id', 'holding_snapshots', ['user_id'])

    # Create portfolio_value_snapshots table
    op.create_table(
        'portfolio_value_snapshots',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.Column('total_value', sa.Numeric(28, 8), nullable=False),
        sa.Column('total_invested', sa.Numeric(28, 8), nullable=False),
        sa.Column('profit_loss', sa.Numeric(28, 8), nullable=False),
        sa.Column('percentage_change', sa.Numeric(18, 8), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index(
        'ix_portfolio_value_snapshots_user_recorded',
        'portfolio_value_snapshots',
        ['user_id', 'recorded_at'],
    )


def downgrade() -> None:
    op.drop_index('ix_portfolio_value_snapshots_user_recorded',
                  table_name='portfolio_value_snapshots')
    op.drop_table('portfolio_value_snapshots')

    op.drop_index('ix_holding_snapshots_user_id', table_name='holding_snapshots')
    op.drop_index('ix_holding_snapshots_id', table_name='holding_snapshots')
    op.drop_table('holding_snapshots')

    op.drop_index('ix_transactions_user_asset', table_name='transactions')
    op.drop_index('ix_transactions_occurred_at', table_name='transactions')
    op.drop_index('ix_transactions_asset_id', table_name='transactions')
    op.drop_index('ix_transactions_user_id', table_name='transactions')
    op.drop_index('ix_transactions_id', table_name='transactions')
    op.drop_table('transactions')
    transaction_type.drop(op.get_bind(), checkfirst=True)

    op.drop_index('ix_users_username', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')
