"""create_index_records

Revision ID: 5b1f0c3a9d27
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5b1f0c3a9d27'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSION = 384  # all-MiniLM-L6-v2


def upgrade() -> None:
    """
    Create the vector index table.

    - index_records: one embedding per (namespace, item_id)
    - HNSW index for cosine similarity search
    - GIN index for metadata containment filters (owner_id, scope_id)
    """
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    op.create_table(
        'index_records',
        sa.Column('namespace', sa.String(length=50), nullable=False, comment='Index partition: messages or avatar_documents'),
        sa.Column('item_id', sa.String(length=255), nullable=False, comment="Id of the source message or document"),
        sa.Column('embedding', Vector(EMBEDDING_DIMENSION), nullable=False, comment="Embedding of the item's text, compared by cosine distance"),
        sa.Column('content', sa.Text(), nullable=False, server_default=''),
        sa.Column('record_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}', comment='Payload returned with search results and used for filtering'),
        sa.Column('embedding_model', sa.String(length=255), nullable=True, comment='Model that produced the embedding'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.PrimaryKeyConstraint('namespace', 'item_id', name=op.f('pk_index_records')),
    )

    # m=16 (max connections per layer), ef_construction=64 (quality during build)
    op.execute("""
        CREATE INDEX ix_index_records_embedding_hnsw
        ON index_records
        USING hnsw (embedding vector_cosine_ops)
        WITH (m = 16, ef_construction = 64)
    """)

    op.create_index(
        'ix_index_records_record_metadata_gin',
        'index_records',
        ['record_metadata'],
        postgresql_using='gin',
        postgresql_ops={'record_metadata': 'jsonb_path_ops'},
    )


def downgrade() -> None:
    op.drop_index('ix_index_records_record_metadata_gin', table_name='index_records')
    op.execute('DROP INDEX IF EXISTS ix_index_records_embedding_hnsw')
    op.drop_table('index_records')
