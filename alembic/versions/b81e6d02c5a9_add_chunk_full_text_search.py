"""add_chunk_full_text_search

Revision ID: b81e6d02c5a9
Revises: 4f2a9c1d7e30
Create Date: 2026-09-21 16:45:03.117290

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'b81e6d02c5a9'
down_revision: Union[str, Sequence[str], None] = '4f2a9c1d7e30'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column('document_chunks', sa.Column('content_tsv', postgresql.TSVECTOR(), nullable=True))
    op.create_index(
        'ix_document_chunks_content_tsv',
        'document_chunks',
        ['content_tsv'],
        unique=False,
        postgresql_using='gin',
    )

    # Keep content_tsv in sync with content on every write
    op.execute("""
        CREATE OR REPLACE FUNCTION document_chunks_tsv_update() RETURNS trigger AS $$
        BEGIN
            NEW.content_tsv := to_tsvector('english', NEW.content);
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER document_chunks_tsv_update
        BEFORE INSERT OR UPDATE OF content ON document_chunks
        FOR EACH ROW EXECUTE FUNCTION document_chunks_tsv_update();
    """)

    # Backfill existing rows
    op.execute("""
        UPDATE document_chunks
        SET content_tsv = to_tsvector('english', content)
        WHERE content_tsv IS NULL
    """)

    op.create_index(
        'ix_project_works_pdf_storage_key',
        'project_works',
        ['pdf_storage_key'],
        unique=False,
        postgresql_where=sa.text('pdf_storage_key IS NOT NULL'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_project_works_pdf_storage_key', table_name='project_works')
    op.execute('DROP TRIGGER IF EXISTS document_chunks_tsv_update ON document_chunks')
    op.execute('DROP FUNCTION IF EXISTS document_chunks_tsv_update()')
    op.drop_index('ix_document_chunks_content_tsv', table_name='document_chunks')
    op.drop_column('document_chunks', 'content_tsv')
