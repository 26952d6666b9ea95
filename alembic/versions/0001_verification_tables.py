"""verification tables

Revision ID: 0001_verification_tables
Revises:
Create Date: 2026-10-18 12:00:00
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_verification_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'verification_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('identifier', sa.String(), nullable=False),
        sa.Column('code', sa.String(length=6), nullable=False),
        sa.Column('phone_number', sa.String(), nullable=True),
        sa.Column('phone_e164', sa.String(length=16), nullable=False),
        sa.Column('place_id', sa.String(), nullable=True),
        sa.Column('session_id', sa.String(length=64), nullable=False),
        sa.Column('restaurant_name', sa.String(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=False),
        sa.Column('channel', sa.String(length=8), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('verified', sa.Boolean(), nullable=False),
        sa.Column('locked_until', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_verification_codes_identifier'), 'verification_codes', ['identifier'], unique=False)
    op.create_index(op.f('ix_verification_codes_phone_e164'), 'verification_codes', ['phone_e164'], unique=False)
    op.create_index(op.f('ix_verification_codes_ip_address'), 'verification_codes', ['ip_address'], unique=False)
    op.create_index(op.f('ix_verification_codes_expires_at'), 'verification_codes', ['expires_at'], unique=False)

    op.create_table(
        'restaurants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('wallet_address', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('google_place_id', sa.String(length=255), nullable=True),
        sa.Column('business_status', sa.String(length=50), nullable=True),
        sa.Column('rating', sa.Float(), nullable=True),
        sa.Column('user_ratings_total', sa.Integer(), nullable=True),
        sa.Column('business_verified', sa.Boolean(), nullable=False),
        sa.Column('phone_verified', sa.Boolean(), nullable=False),
        sa.Column('square_merchant_id', sa.String(length=128), nullable=True),
        sa.Column('verification_score', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_restaurants_wallet_address'), 'restaurants', ['wallet_address'], unique=True)


def downgrade() -> None:
    op.drop_index(op.f('ix_restaurants_wallet_address'), table_name='restaurants')
    op.drop_table('restaurants')
    op.drop_index(op.f('ix_verification_codes_expires_at'), table_name='verification_codes')
    op.drop_index(op.f('ix_verification_codes_ip_address'), table_name='verification_codes')
    op.drop_index(op.f('ix_verification_codes_phone_e164'), table_name='verification_codes')
    op.drop_index(op.f('ix_verification_codes_identifier'), table_name='verification_codes')
    op.drop_table('verification_codes')
