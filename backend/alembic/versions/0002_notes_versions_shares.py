"""create notes, version ledger, shares and media

Revision ID: 0002_notes_versions_shares
Revises: 0001_auth_users
Create Date: 2026-10-12 09:40:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_notes_versions_shares"
down_revision = "0001_auth_users"
branch_labels = None
depends_on = None


def upgrade() -> None:
    dialect = op.get_bind().dialect.name
    # SQL Server rejects a second cascade path from users to note_shares
    # (users -> notes -> note_shares); a trigger on users covers it there.
    share_user_ondelete = None if dialect == "mssql" else "CASCADE"

    op.create_table(
        "notes",
        sa.Column("Id", sa.Integer(), primary_key=True),
        sa.Column("UserId", sa.Integer(), nullable=False),
        sa.Column("Title", sa.String(length=255), nullable=False),
        sa.Column("Content", sa.Text(), nullable=False),
        sa.Column("Version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("DeletedAt", sa.DateTime(), nullable=True),
        sa.Column("CreatedAt", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("UpdatedAt", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["UserId"], ["users.Id"], name="fk_notes_user", ondelete="CASCADE"),
        sa.CheckConstraint("Version >= 1", name="ck_notes_version_positive"),
    )
    op.create_index("ix_notes_UserId", "notes", ["UserId"])
    op.create_index("ix_notes_DeletedAt", "notes", ["DeletedAt"])

    op.create_table(
        "note_versions",
        sa.Column("Id", sa.Integer(), primary_key=True),
        sa.Column("NoteId", sa.Integer(), nullable=False),
        sa.Column("Title", sa.String(length=255), nullable=False),
        sa.Column("Content", sa.Text(), nullable=False),
        sa.Column("VersionNumber", sa.Integer(), nullable=False),
        sa.Column("CreatedBy", sa.Integer(), nullable=False),
        sa.Column("CreatedAt", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["NoteId"], ["notes.Id"], name="fk_note_versions_note", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["CreatedBy"], ["users.Id"], name="fk_note_versions_author"),
    )
    op.create_index("ix_note_versions_note_version", "note_versions", ["NoteId", "VersionNumber"])

    op.create_table(
        "note_shares",
        sa.Column("Id", sa.Integer(), primary_key=True),
        sa.Column("NoteId", sa.Integer(), nullable=False),
        sa.Column("UserId", sa.Integer(), nullable=False),
        sa.Column("Permission", sa.String(length=10), nullable=False, server_default="READ"),
        sa.Column("CreatedAt", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("UpdatedAt", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["NoteId"], ["notes.Id"], name="fk_note_shares_note", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["UserId"], ["users.Id"], name="fk_note_shares_user", ondelete=share_user_ondelete),
        sa.UniqueConstraint("NoteId", "UserId", name="uq_note_shares_note_user"),
    )
    op.create_index("ix_note_shares_UserId", "note_shares", ["UserId"])
    if dialect == "mssql":
        op.execute(
            "CREATE TRIGGER trg_users_purge_note_shares ON users INSTEAD OF DELETE AS "
            "BEGIN "
            "SET NOCOUNT ON; "
            "DELETE FROM note_shares WHERE UserId IN (SELECT Id FROM deleted); "
            "DELETE FROM users WHERE Id IN (SELECT Id FROM deleted); "
            "END"
        )

    op.create_table(
        "note_media",
        sa.Column("Id", sa.Integer(), primary_key=True),
        sa.Column("NoteId", sa.Integer(), nullable=False),
        sa.Column("FileName", sa.String(length=255), nullable=False),
        sa.Column("MimeType", sa.String(length=100), nullable=False),
        sa.Column("Size", sa.Integer(), nullable=False),
        sa.Column("Data", sa.LargeBinary(), nullable=False),
        sa.Column("CreatedAt", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["NoteId"], ["notes.Id"], name="fk_note_media_note", ondelete="CASCADE"),
    )
    op.create_index("ix_note_media_NoteId", "note_media", ["NoteId"])


def downgrade() -> None:
    if op.get_bind().dialect.name == "mssql":
        op.execute("DROP TRIGGER IF EXISTS trg_users_purge_note_shares")
    op.drop_index("ix_note_media_NoteId", table_name="note_media")
    op.drop_table("note_media")
    op.drop_index("ix_note_shares_UserId", table_name="note_shares")
    op.drop_table("note_shares")
    op.drop_index("ix_note_versions_note_version", table_name="note_versions")
    op.drop_table("note_versions")
    op.drop_index("ix_notes_DeletedAt", table_name="notes")
    op.drop_index("ix_notes_UserId", table_name="notes")
    op.drop_table("notes")
