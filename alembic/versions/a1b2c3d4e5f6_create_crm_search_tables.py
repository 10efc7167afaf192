"""create crm entity, tag, saved search and search event tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "a1b2c3d4e5f6"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _tag_table(name: str, owner_column: str, owner_table: str, constraint: str) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            owner_column,
            sa.String(36),
            sa.ForeignKey(f"{owner_table}.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("tag", sa.String(100), nullable=False, index=True),
        sa.UniqueConstraint(owner_column, "tag", name=constraint),
    )


def upgrade() -> None:
    op.create_table(
        "leads",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("company", sa.String(200), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="new"),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("source", sa.String(100), nullable=True),
        sa.Column("assigned_user_id", sa.String(36), nullable=True),
        sa.Column("custom_fields", sa.JSON(), nullable=True),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_leads_tenant_status", "leads", ["tenant_id", "status"])
    op.create_index("idx_leads_tenant_created", "leads", ["tenant_id", "created_at"])

    op.create_table(
        "deals",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("stage", sa.String(50), nullable=False, server_default="prospecting"),
        sa.Column("value", sa.Float(), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("pipeline_id", sa.String(36), nullable=True),
        sa.Column("assigned_user_id", sa.String(36), nullable=True),
        sa.Column("custom_fields", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_deals_tenant_stage", "deals", ["tenant_id", "stage"])
    op.create_index("idx_deals_tenant_value", "deals", ["tenant_id", "value"])

    op.create_table(
        "customers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("company", sa.String(200), nullable=True),
        sa.Column("health_score", sa.Integer(), nullable=True),
        sa.Column("custom_fields", sa.JSON(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "customer_segments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "tickets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
        sa.Column("subject", sa.String(500), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="open"),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("channel", sa.String(50), nullable=True),
        sa.Column("assigned_agent_id", sa.String(36), nullable=True),
        sa.Column("team_id", sa.String(36), nullable=True),
        sa.Column("custom_fields", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_tickets_tenant_status", "tickets", ["tenant_id", "status"])

    op.create_table(
        "conversations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
        sa.Column("subject", sa.String(500), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="active"),
        sa.Column("channel", sa.String(50), nullable=True),
        *_timestamps(),
    )

    _tag_table("lead_tags", "lead_id", "leads", "uq_lead_tag")
    _tag_table("deal_tags", "deal_id", "deals", "uq_deal_tag")
    _tag_table("customer_tags", "customer_id", "customers", "uq_customer_tag")
    _tag_table("ticket_tags", "ticket_id", "tickets", "uq_ticket_tag")

    op.create_table(
        "saved_searches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("query", sa.String(500), nullable=True),
        sa.Column("semantic", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("filters", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_saved_searches_owner", "saved_searches", ["tenant_id", "user_id", "created_at"])

    op.create_table(
        "search_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, index=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("query", sa.String(500), nullable=False),
        sa.Column("normalized_query", sa.String(500), nullable=True, index=True),
        sa.Column("filters", sa.JSON(), nullable=True),
        sa.Column("results_count", sa.Integer(), nullable=True),
        sa.Column("execution_time_ms", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_search_events_owner", "search_events", ["tenant_id", "user_id", "created_at"])
    op.create_index("idx_search_events_tenant_created", "search_events", ["tenant_id", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_search_events_tenant_created", table_name="search_events")
    op.drop_index("idx_search_events_owner", table_name="search_events")
    op.drop_table("search_events")
    op.drop_index("idx_saved_searches_owner", table_name="saved_searches")
    op.drop_table("saved_searches")
    for table in ("ticket_tags", "customer_tags", "deal_tags", "lead_tags"):
        op.drop_table(table)
    op.drop_table("conversations")
    op.drop_index("idx_tickets_tenant_status", table_name="tickets")
    op.drop_table("tickets")
    op.drop_table("customer_segments")
    op.drop_table("customers")
    op.drop_index("idx_deals_tenant_value", table_name="deals")
    op.drop_index("idx_deals_tenant_stage", table_name="deals")
    op.drop_table("deals")
    op.drop_index("idx_leads_tenant_created", table_name="leads")
    op.drop_index("idx_leads_tenant_status", table_name="leads")
    op.drop_table("leads")
