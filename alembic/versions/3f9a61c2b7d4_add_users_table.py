"""add_users_table

Revision ID: 3f9a61c2b7d4
Revises:
Create Date: 2026-10-19 10:42:07.514203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a61c2b7d4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('roles', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        # 2FA
        sa.Column('two_factor_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('two_factor_secret', sa.String(), nullable=True),
        sa.Column('two_factor_method', sa.String(), nullable=True),
        sa.Column('hotp_counter', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('legacy_code', sa.String(), nullable=True),
        sa.Column('legacy_code_expiry', sa.DateTime(), nullable=True),
        sa.Column('legacy_code_used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
        sa.UniqueConstraint('email')
    )


def downgrade() -> None:
    op.drop_table('users')
