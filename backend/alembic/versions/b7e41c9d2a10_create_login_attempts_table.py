"""create_login_attempts_table

Revision ID: b7e41c9d2a10
Revises:
Create Date: 2026-10-19 09:12:44.218307

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = 'b7e41c9d2a10'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table('login_attempts',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=True),
    sa.Column('email', sa.Text(), nullable=False),
    sa.Column('success', sa.Boolean(), nullable=False),
    sa.Column('failure_reason', sa.Enum(
        'INVALID_CREDENTIALS', 'USER_NOT_FOUND', 'ACCOUNT_LOCKED', 'EMAIL_NOT_VERIFIED',
        'WHATSAPP_NOT_VERIFIED', 'NO_STUDENT_ACCESS', 'INVALID_TOKEN', 'TOKEN_EXPIRED',
        'RATE_LIMITED', 'VALIDATION_ERROR', 'SERVER_ERROR',
        name='failurereason', native_enum=False, length=32), nullable=True),
    sa.Column('ip_address', sa.Text(), nullable=False),
    sa.Column('user_agent', sa.Text(), nullable=False),
    sa.Column('location', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('device_info', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('login_method', sa.Enum(
        'EMAIL_PASSWORD', 'TOKEN_REFRESH', 'ADMIN_LOGIN',
        name='loginmethod', native_enum=False, length=32), nullable=False),
    sa.Column('attempted_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('is_suspicious', sa.Boolean(), nullable=False),
    sa.Column('suspicious_reasons', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('session_duration_ms', sa.BigInteger(), nullable=True),
    sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_login_attempts'))
    )
    op.create_index('ix_login_attempts_email_attempted', 'login_attempts', ['email', 'attempted_at'], unique=False)
    op.create_index('ix_login_attempts_user_attempted', 'login_attempts', ['user_id', 'attempted_at'], unique=False)
    op.create_index('ix_login_attempts_ip_attempted', 'login_attempts', ['ip_address', 'attempted_at'], unique=False)
    op.create_index('ix_login_attempts_success_attempted', 'login_attempts', ['success', 'attempted_at'], unique=False)
    op.create_index('ix_login_attempts_attempted', 'login_attempts', ['attempted_at'], unique=False)
    op.create_index('ix_login_attempts_suspicious_attempted', 'login_attempts', ['is_suspicious', 'attempted_at'], unique=False)
    op.create_index(
        'ix_login_attempts_email_ip_success_attempted',
        'login_attempts',
        ['email', 'ip_address', 'success', 'attempted_at'],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index('ix_login_attempts_email_ip_success_attempted', table_name='login_attempts')
    op.drop_index('ix_login_attempts_suspicious_attempted', table_name='login_attempts')
    op.drop_index('ix_login_attempts_attempted', table_name='login_attempts')
    op.drop_index('ix_login_attempts_success_attempted', table_name='login_attempts')
    op.drop_index('ix_login_attempts_ip_attempted', table_name='login_attempts')
    op.drop_index('ix_login_attempts_user_attempted', table_name='login_attempts')
    op.drop_index('ix_login_attempts_email_attempted', table_name='login_attempts')
    op.drop_table('login_attempts')
