"""create users and refresh tokens

Revision ID: 0001_auth_users
Revises:
Create Date: 2026-10-12 09:10:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_auth_users"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("Id", sa.Integer(), primary_key=True),
        sa.Column("Username", sa.String(length=50), nullable=False),
        sa.Column("Email", sa.String(length=254), nullable=False),
        sa.Column("PasswordHash", sa.String(length=255), nullable=False),
        sa.Column("CreatedAt", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("UpdatedAt", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_Username", "users", ["Username"], unique=True)
    op.create_index("ix_users_Email", "users", ["Email"], unique=True)

    op.create_table(
        "refresh_tokens",
        sa.Column("Id", sa.Integer(), primary_key=True),
        sa.Column("UserId", sa.Integer(), nullable=False),
        sa.Column("TokenHash", sa.String(length=255), nullable=False),
        sa.Column("CreatedAt", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("ExpiresAt", sa.DateTime(timezone=True), nullable=False),
        sa.Column("RevokedAt", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["UserId"], ["users.Id"], name="fk_refresh_tokens_user", ondelete="CASCADE"
        ),
    )
    op.create_index("ix_refresh_tokens_UserId", "refresh_tokens", ["UserId"])


def downgrade() -> None:
    op.drop_index("ix_refresh_tokens_UserId", table_name="refresh_tokens")
    op.drop_table("refresh_tokens")
    op.drop_index("ix_users_Email", table_name="users")
    op.drop_index("ix_users_Username", table_name="users")
    op.drop_table("users")
