"""create_rag_tables

Revision ID: 4f2a9c1d7e30
Revises:
Create Date: 2026-09-14 10:12:41.382514

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from pgvector.sqlalchemy import Vector


# revision identifiers, used by Alembic.
revision: str = '4f2a9c1d7e30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSIONS = 1536


def upgrade() -> None:
    """Upgrade schema."""
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    op.create_table(
        'works',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('authors', sa.JSON(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('doi', sa.String(), nullable=True),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_works_id'), 'works', ['id'], unique=False)
    op.create_index(op.f('ix_works_doi'), 'works', ['doi'], unique=False)

    op.create_table(
        'project_works',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('project_id', sa.BigInteger(), nullable=False),
        sa.Column('work_id', sa.BigInteger(), nullable=False),
        sa.Column('final_decision', sa.String(), nullable=True),
        sa.Column('pdf_storage_key', sa.String(), nullable=True),
        sa.Column('pdf_uploaded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pdf_file_size', sa.BigInteger(), nullable=True),
        sa.Column('pdf_source', sa.String(), nullable=True),
        sa.Column('ingestion_status', sa.String(), server_default='pending', nullable=False),
        sa.Column('ingestion_error', sa.Text(), nullable=True),
        sa.Column('chunks_created', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_ingested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(['work_id'], ['works.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('project_id', 'work_id', name='uq_project_works_project_work')
    )
    op.create_index(op.f('ix_project_works_id'), 'project_works', ['id'], unique=False)
    op.create_index(op.f('ix_project_works_project_id'), 'project_works', ['project_id'], unique=False)
    op.create_index(op.f('ix_project_works_work_id'), 'project_works', ['work_id'], unique=False)
    op.create_index(op.f('ix_project_works_ingestion_status'), 'project_works', ['ingestion_status'], unique=False)

    op.create_table(
        'document_chunks',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('work_id', sa.BigInteger(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('chunk_index', sa.Integer(), nullable=False),
        sa.Column('total_chunks', sa.Integer(), nullable=False),
        sa.Column('embedding', Vector(EMBEDDING_DIMENSIONS), nullable=False),
        sa.Column('chunk_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['work_id'], ['works.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('work_id', 'chunk_index', name='uq_document_chunks_work_chunk_index')
    )
    op.create_index(op.f('ix_document_chunks_id'), 'document_chunks', ['id'], unique=False)
    op.create_index(op.f('ix_document_chunks_work_id'), 'document_chunks', ['work_id'], unique=False)
    op.create_index(
        'ix_document_chunks_embedding_hnsw',
        'document_chunks',
        ['embedding'],
        unique=False,
        postgresql_using='hnsw',
        postgresql_with={'m': 16, 'ef_construction': 64},
        postgresql_ops={'embedding': 'vector_cosine_ops'},
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_document_chunks_embedding_hnsw', table_name='document_chunks')
    op.drop_index(op.f('ix_document_chunks_work_id'), table_name='document_chunks')
    op.drop_index(op.f('ix_document_chunks_id'), table_name='document_chunks')
    op.drop_table('document_chunks')
    op.drop_index(op.f('ix_project_works_ingestion_status'), table_name='project_works')
    op.drop_index(op.f('ix_project_works_work_id'), table_name='project_works')
    op.drop_index(op.f('ix_project_works_project_id'), table_name='project_works')
    op.drop_index(op.f('ix_project_works_id'), table_name='project_works')
    op.drop_table('project_works')
    op.drop_index(op.f('ix_works_doi'), table_name='works')
    op.drop_index(op.f('ix_works_id'), table_name='works')
    op.drop_table('works')
