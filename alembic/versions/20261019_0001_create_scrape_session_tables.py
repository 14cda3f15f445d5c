"""create scrape session tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:30:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "scrape_sessions",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("owner_id", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("towns", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("industries", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("config", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("completed_towns", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_towns", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_businesses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_industries", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_industries", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processing_seconds", sa.Float(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_scrape_sessions"),
    )
    op.create_index("ix_scrape_sessions_created_at", "scrape_sessions", ["created_at"], unique=False)
    op.create_index("ix_scrape_sessions_owner_id", "scrape_sessions", ["owner_id"], unique=False)
    op.create_index("ix_scrape_sessions_status", "scrape_sessions", ["status"], unique=False)

    op.create_table(
        "scraped_businesses",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("phone", sa.String(length=64), nullable=False),
        sa.Column("provider", sa.String(length=100), nullable=False),
        sa.Column("town", sa.String(length=255), nullable=False),
        sa.Column("industry", sa.String(length=255), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("map_reference", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["scrape_sessions.id"],
            name="fk_scraped_businesses_session_id_scrape_sessions",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_scraped_businesses"),
    )
    op.create_index("ix_scraped_businesses_session_id", "scraped_businesses", ["session_id"], unique=False)

    op.create_table(
        "scrape_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("logged_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("level", sa.String(length=16), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["scrape_sessions.id"],
            name="fk_scrape_logs_session_id_scrape_sessions",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_scrape_logs"),
    )
    op.create_index("ix_scrape_logs_session_id", "scrape_logs", ["session_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_scrape_logs_session_id", table_name="scrape_logs")
    op.drop_table("scrape_logs")
    op.drop_index("ix_scraped_businesses_session_id", table_name="scraped_businesses")
    op.drop_table("scraped_businesses")
    op.drop_index("ix_scrape_sessions_status", table_name="scrape_sessions")
    op.drop_index("ix_scrape_sessions_owner_id", table_name="scrape_sessions")
    op.drop_index("ix_scrape_sessions_created_at", table_name="scrape_sessions")
    op.drop_table("scrape_sessions")
