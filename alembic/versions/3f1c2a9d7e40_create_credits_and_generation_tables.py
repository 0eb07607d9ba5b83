"""create credits and generation tables

Revision ID: 3f1c2a9d7e40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7e40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Per-user balances, free credits are spent before paid ones
    op.create_table(
        'credit_accounts',
        sa.Column('user_id', sa.String(36), primary_key=True),
        sa.Column('free_credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paid_credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_generations', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_generation_at', sa.DateTime(), nullable=True),
        sa.Column('last_preset_id', sa.String(64), nullable=True),
        sa.Column('last_style_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('free_credits >= 0', name='ck_credit_accounts_free_nonneg'),
        sa.CheckConstraint('paid_credits >= 0', name='ck_credit_accounts_paid_nonneg'),
    )

    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('type', sa.String(16), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('bucket', sa.String(8), nullable=False),
        sa.Column('reason', sa.String(255), nullable=False),
        sa.Column('reference_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_credit_transactions_user_id', 'credit_transactions', ['user_id'])

    op.create_table(
        'generations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('preset_id', sa.String(64), nullable=False),
        sa.Column('style_id', sa.String(64), nullable=False),
        sa.Column('input_image_url', sa.Text(), nullable=True),
        sa.Column('image_urls', sa.JSON(), nullable=False),
        sa.Column('is_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_free_generation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_generations_user_id', 'generations', ['user_id'])

    op.create_table(
        'generation_sessions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('preset_id', sa.String(64), nullable=False),
        sa.Column('style_id', sa.String(64), nullable=False),
        sa.Column('source_image_ref', sa.Text(), nullable=False),
        sa.Column('expected_image_count', sa.Integer(), nullable=False, server_default='4'),
        sa.Column('completed_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_mask', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('claimed_mask', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_free_generation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('generation_id', sa.String(36), sa.ForeignKey('generations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('finalized_at', sa.DateTime(), nullable=True),
        sa.Column('refunded', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_generation_sessions_user_id', 'generation_sessions', ['user_id'])
    op.create_index('ix_generation_sessions_generation_id', 'generation_sessions', ['generation_id'])
    op.create_index('ix_generation_sessions_expires_at', 'generation_sessions', ['expires_at'])

    op.create_table(
        'images',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('generation_batch_id', sa.String(36), sa.ForeignKey('generations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('storage_path', sa.String(512), nullable=False),
        sa.Column('preset_id', sa.String(64), nullable=False),
        sa.Column('style_id', sa.String(64), nullable=False),
        sa.Column('image_index', sa.Integer(), nullable=False),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_free_generation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('generation_batch_id', 'image_index', name='uq_images_batch_index'),
    )
    op.create_index('ix_images_user_id', 'images', ['user_id'])
    op.create_index('ix_images_generation_batch_id', 'images', ['generation_batch_id'])

    # Store transactions already credited by the purchase webhook
    op.create_table(
        'processed_purchases',
        sa.Column('transaction_id', sa.String(255), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('product_id', sa.String(128), nullable=False),
        sa.Column('credits', sa.Integer(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_processed_purchases_user_id', 'processed_purchases', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_processed_purchases_user_id', table_name='processed_purchases')
    op.drop_table('processed_purchases')
    op.drop_index('ix_images_generation_batch_id', table_name='images')
    op.drop_index('ix_images_user_id', table_name='images')
    op.drop_table('images')
    op.drop_index('ix_generation_sessions_expires_at', table_name='generation_sessions')
    op.drop_index('ix_generation_sessions_generation_id', table_name='generation_sessions')
    op.drop_index('ix_generation_sessions_user_id', table_name='generation_sessions')
    op.drop_table('generation_sessions')
    op.drop_index('ix_generations_user_id', table_name='generations')
    op.drop_table('generations')
    op.drop_index('ix_credit_transactions_user_id', table_name='credit_transactions')
    op.drop_table('credit_transactions')
    op.drop_table('credit_accounts')
