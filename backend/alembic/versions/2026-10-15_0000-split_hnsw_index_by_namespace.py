"""split_hnsw_index_by_namespace

Revision ID: c3e8a41d7f02
Revises: 5b1f0c3a9d27
Create Date: 2026-10-15 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = 'c3e8a41d7f02'
down_revision: Union[str, None] = '5b1f0c3a9d27'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NAMESPACES = ('messages', 'avatar_documents')


def upgrade() -> None:
    """
    Replace the table-wide HNSW index with one partial index per namespace.

    Filters run after the HNSW scan, so each namespace needs its own graph
    for a search to see candidates from that namespace only.
    """
    op.execute('DROP INDEX IF EXISTS ix_index_records_embedding_hnsw')

    for namespace in NAMESPACES:
        op.execute(f"""
            CREATE INDEX ix_index_records_embedding_hnsw_{namespace}
            ON index_records
            USING hnsw (embedding vector_cosine_ops)
            WITH (m = 16, ef_construction = 64)
            WHERE namespace = '{namespace}'
        """)


def downgrade() -> None:
    for namespace in NAMESPACES:
        op.execute(f'DROP INDEX IF EXISTS ix_index_records_embedding_hnsw_{namespace}')

    op.execute("""
        CREATE INDEX ix_index_records_embedding_hnsw
        ON index_records
        USING hnsw (embedding vector_cosine_ops)
        WITH (m = 16, ef_construction = 64)
    """)
