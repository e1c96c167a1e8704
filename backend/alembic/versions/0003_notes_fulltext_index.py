"""full-text index over note title and content (SQL Server and MySQL)

Revision ID: 0003_notes_fulltext_index
Revises: 0002_notes_versions_shares
Create Date: 2026-10-12 10:05:00.000000
"""

from alembic import op

revision = "0003_notes_fulltext_index"
down_revision = "0002_notes_versions_shares"
branch_labels = None
depends_on = None


def upgrade() -> None:
    dialect = op.get_bind().dialect.name
    if dialect in {"mysql", "mariadb"}:
        op.create_index("ft_notes_title_content", "notes", ["Title", "Content"], mysql_prefix="FULLTEXT")
        return
    if dialect != "mssql":
        return
    op.create_index("ux_notes_fulltext_key", "notes", ["Id"], unique=True)
    # Full-text DDL cannot run inside a user transaction.
    with op.get_context().autocommit_block():
        op.execute(
            "IF NOT EXISTS (SELECT 1 FROM sys.fulltext_catalogs WHERE name = 'notes_catalog') "
            "CREATE FULLTEXT CATALOG notes_catalog"
        )
        op.execute(
            "CREATE FULLTEXT INDEX ON notes (Title, Content) "
            "KEY INDEX ux_notes_fulltext_key ON notes_catalog"
        )


def downgrade() -> None:
    dialect = op.get_bind().dialect.name
    if dialect in {"mysql", "mariadb"}:
        op.drop_index("ft_notes_title_content", table_name="notes")
        return
    if dialect != "mssql":
        return
    with op.get_context().autocommit_block():
        op.execute("DROP FULLTEXT INDEX ON notes")
    op.drop_index("ux_notes_fulltext_key", table_name="notes")
