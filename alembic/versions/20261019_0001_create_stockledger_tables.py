"""create stock ledger and period close tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {ix["name"] for ix in inspector.get_indexes(table_name)}


def _money(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(15, 2), nullable=False, server_default="0")


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "items"):
        op.create_table(
            "items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("unit", sa.String(length=10), nullable=False),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )
        op.create_index("ix_items_active_code", "items", ["is_active", "code"], unique=False)

    if not _table_exists(inspector, "locations"):
        op.create_table(
            "locations",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("code", sa.String(length=30), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False),
            sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )
        op.create_index("ix_locations_active_code", "locations", ["is_active", "code"], unique=False)

    if not _table_exists(inspector, "suppliers"):
        op.create_table(
            "suppliers",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("code", sa.String(length=30), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )

    if not _table_exists(inspector, "periods"):
        op.create_table(
            "periods",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("prices_complete", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("approval_id", sa.String(length=36), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=True),
            sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_periods_status", "periods", ["status"], unique=False)
        op.create_index("ix_periods_start_end", "periods", ["start_date", "end_date"], unique=False)

    if not _table_exists(inspector, "period_locations"):
        op.create_table(
            "period_locations",
            sa.Column("period_id", sa.String(length=36), nullable=False),
            sa.Column("location_id", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("opening_value", sa.Numeric(15, 2), server_default="0", nullable=False),
            sa.Column("closing_value", sa.Numeric(15, 2), nullable=True),
            sa.Column("snapshot_data", sa.Text(), nullable=True),
            sa.Column("ready_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("ready_by", sa.String(length=36), nullable=True),
            sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
            sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
            sa.PrimaryKeyConstraint("period_id", "location_id"),
        )
        op.create_index(
            "ix_period_locations_period_status",
            "period_locations",
            ["period_id", "status"],
            unique=False,
        )

    if not _table_exists(inspector, "item_prices"):
        op.create_table(
            "item_prices",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("period_id", sa.String(length=36), nullable=False),
            sa.Column("price", sa.Numeric(15, 4), nullable=False),
            sa.Column("set_by", sa.String(length=36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("item_id", "period_id", name="uq_item_prices_item_period"),
        )
        op.create_index(op.f("ix_item_prices_item_id"), "item_prices", ["item_id"], unique=False)
        op.create_index(op.f("ix_item_prices_period_id"), "item_prices", ["period_id"], unique=False)

    if not _table_exists(inspector, "location_stock"):
        op.create_table(
            "location_stock",
            sa.Column("location_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("on_hand", sa.Numeric(15, 4), server_default="0", nullable=False),
            sa.Column("wac", sa.Numeric(15, 4), server_default="0", nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.CheckConstraint("on_hand >= 0", name="ck_location_stock_on_hand_non_negative"),
            sa.CheckConstraint("wac >= 0", name="ck_location_stock_wac_non_negative"),
            sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.PrimaryKeyConstraint("location_id", "item_id"),
        )
        op.create_index("ix_location_stock_item", "location_stock", ["item_id"], unique=False)

    if not _table_exists(inspector, "deliveries"):
        op.create_table(
            "deliveries",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("delivery_no", sa.String(length=20), nullable=True),
            sa.Column("period_id", sa.String(length=36), nullable=True),
            sa.Column("location_id", sa.String(length=36), nullable=False),
            sa.Column("supplier_id", sa.String(length=36), nullable=True),
            sa.Column("invoice_no", sa.String(length=100), nullable=True),
            sa.Column("delivery_note", sa.String(length=500), nullable=True),
            sa.Column("delivery_date", sa.Date(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("total_amount", sa.Numeric(15, 2), server_default="0", nullable=False),
            sa.Column("has_variance", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("created_by", sa.String(length=36), nullable=False),
            sa.Column("posted_by", sa.String(length=36), nullable=True),
            sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
            sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
            sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("delivery_no"),
            sa.UniqueConstraint("invoice_no", name="uq_deliveries_invoice_no"),
        )
        op.create_index(op.f("ix_deliveries_period_id"), "deliveries", ["period_id"], unique=False)
        op.create_index(op.f("ix_deliveries_location_id"), "deliveries", ["location_id"], unique=False)
        op.create_index(
            "ix_deliveries_location_period_status",
            "deliveries",
            ["location_id", "period_id", "status"],
            unique=False,
        )

    if not _table_exists(inspector, "delivery_lines"):
        op.create_table(
            "delivery_lines",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("delivery_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("quantity", sa.Numeric(15, 4), nullable=False),
            sa.Column("unit_price", sa.Numeric(15, 4), nullable=False),
            sa.Column("period_price", sa.Numeric(15, 4), nullable=True),
            sa.Column("price_variance", sa.Numeric(15, 4), server_default="0", nullable=False),
            sa.Column("line_value", sa.Numeric(15, 2), server_default="0", nullable=False),
            sa.Column("ncr_id", sa.String(length=36), nullable=True),
            sa.Column("line_no", sa.Integer(), server_default="0", nullable=False),
            sa.ForeignKeyConstraint(["delivery_id"], ["deliveries.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_delivery_lines_delivery_id"), "delivery_lines", ["delivery_id"], unique=False)
        op.create_index(op.f("ix_delivery_lines_item_id"), "delivery_lines", ["item_id"], unique=False)

    if not _table_exists(inspector, "issues"):
        op.create_table(
            "issues",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("issue_no", sa.String(length=20), nullable=False),
            sa.Column("period_id", sa.String(length=36), nullable=False),
            sa.Column("location_id", sa.String(length=36), nullable=False),
            sa.Column("issue_date", sa.Date(), nullable=False),
            sa.Column("cost_centre", sa.String(length=10), nullable=False),
            sa.Column("total_value", sa.Numeric(15, 2), server_default="0", nullable=False),
            sa.Column("notes", sa.String(length=500), nullable=True),
            sa.Column("posted_by", sa.String(length=36), nullable=False),
            sa.Column("posted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
            sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("issue_no"),
        )
        op.create_index(op.f("ix_issues_period_id"), "issues", ["period_id"], unique=False)
        op.create_index(op.f("ix_issues_location_id"), "issues", ["location_id"], unique=False)
        op.create_index("ix_issues_location_period", "issues", ["location_id", "period_id"], unique=False)

    if not _table_exists(inspector, "issue_lines"):
        op.create_table(
            "issue_lines",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("issue_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("quantity", sa.Numeric(15, 4), nullable=False),
            sa.Column("wac_at_issue", sa.Numeric(15, 4), nullable=False),
            sa.Column("line_value", sa.Numeric(15, 2), nullable=False),
            sa.ForeignKeyConstraint(["issue_id"], ["issues.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_issue_lines_issue_id"), "issue_lines", ["issue_id"], unique=False)
        op.create_index(op.f("ix_issue_lines_item_id"), "issue_lines", ["item_id"], unique=False)

    if not _table_exists(inspector, "transfers"):
        op.create_table(
            "transfers",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("transfer_no", sa.String(length=20), nullable=False),
            sa.Column("from_location_id", sa.String(length=36), nullable=False),
            sa.Column("to_location_id", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("requested_by", sa.String(length=36), nullable=False),
            sa.Column("approved_by", sa.String(length=36), nullable=True),
            sa.Column("request_date", sa.Date(), nullable=False),
            sa.Column("approval_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("transfer_date", sa.Date(), nullable=True),
            sa.Column("total_value", sa.Numeric(15, 2), server_default="0", nullable=False),
            sa.Column("notes", sa.String(length=500), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.ForeignKeyConstraint(["from_location_id"], ["locations.id"]),
            sa.ForeignKeyConstraint(["to_location_id"], ["locations.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("transfer_no"),
        )
        op.create_index(op.f("ix_transfers_from_location_id"), "transfers", ["from_location_id"], unique=False)
        op.create_index(op.f("ix_transfers_to_location_id"), "transfers", ["to_location_id"], unique=False)
        op.create_index(
            "ix_transfers_status_transfer_date",
            "transfers",
            ["status", "transfer_date"],
            unique=False,
        )

    if not _table_exists(inspector, "transfer_lines"):
        op.create_table(
            "transfer_lines",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("transfer_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("quantity", sa.Numeric(15, 4), nullable=False),
            sa.Column("wac_at_transfer", sa.Numeric(15, 4), nullable=False),
            sa.Column("line_value", sa.Numeric(15, 2), nullable=False),
            sa.ForeignKeyConstraint(["transfer_id"], ["transfers.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_transfer_lines_transfer_id"), "transfer_lines", ["transfer_id"], unique=False)
        op.create_index(op.f("ix_transfer_lines_item_id"), "transfer_lines", ["item_id"], unique=False)

    if not _table_exists(inspector, "ncrs"):
        op.create_table(
            "ncrs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("ncr_no", sa.String(length=20), nullable=False),
            sa.Column("location_id", sa.String(length=36), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False),
            sa.Column("auto_generated", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("delivery_id", sa.String(length=36), nullable=True),
            sa.Column("delivery_line_id", sa.String(length=36), nullable=True),
            sa.Column("item_id", sa.String(length=36), nullable=True),
            sa.Column("reason", sa.String(length=1000), nullable=False),
            sa.Column("quantity", sa.Numeric(15, 4), nullable=True),
            sa.Column("value", sa.Numeric(15, 2), server_default="0", nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("financial_impact", sa.String(length=10), nullable=False),
            sa.Column("resolution_notes", sa.String(length=1000), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
            sa.ForeignKeyConstraint(["delivery_id"], ["deliveries.id"]),
            sa.ForeignKeyConstraint(["delivery_line_id"], ["delivery_lines.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("ncr_no"),
        )
        op.create_index(op.f("ix_ncrs_location_id"), "ncrs", ["location_id"], unique=False)
        op.create_index(op.f("ix_ncrs_delivery_id"), "ncrs", ["delivery_id"], unique=False)
        op.create_index("ix_ncrs_location_status", "ncrs", ["location_id", "status"], unique=False)
        op.create_index("ix_ncrs_location_created_at", "ncrs", ["location_id", "created_at"], unique=False)

    if not _table_exists(inspector, "reconciliations"):
        op.create_table(
            "reconciliations",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("period_id", sa.String(length=36), nullable=False),
            sa.Column("location_id", sa.String(length=36), nullable=False),
            _money("opening_stock"),
            _money("receipts"),
            _money("transfers_in"),
            _money("transfers_out"),
            _money("issues"),
            _money("closing_stock"),
            _money("adjustments"),
            _money("back_charges"),
            _money("credits"),
            _money("condemnations"),
            _money("ncr_credits"),
            _money("ncr_losses"),
            sa.Column("updated_by", sa.String(length=36), nullable=True),
            sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
            sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("period_id", "location_id", name="uq_reconciliations_period_location"),
        )
        op.create_index(op.f("ix_reconciliations_period_id"), "reconciliations", ["period_id"], unique=False)
        op.create_index(op.f("ix_reconciliations_location_id"), "reconciliations", ["location_id"], unique=False)

    if not _table_exists(inspector, "approvals"):
        op.create_table(
            "approvals",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("entity_type", sa.String(length=20), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("requested_by", sa.String(length=36), nullable=False),
            sa.Column("reviewed_by", sa.String(length=36), nullable=True),
            sa.Column("requested_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("comments", sa.String(length=1000), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_approvals_entity", "approvals", ["entity_type", "entity_id"], unique=False)

    inspector = sa.inspect(bind)
    if not _index_exists(inspector, "approvals", "uq_approvals_pending_entity"):
        op.create_index(
            "uq_approvals_pending_entity",
            "approvals",
            ["entity_type", "entity_id"],
            unique=True,
            postgresql_where=sa.text("status = 'PENDING'"),
            sqlite_where=sa.text("status = 'PENDING'"),
        )

    if not _table_exists(inspector, "audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("actor_user_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=100), nullable=False),
            sa.Column("target_type", sa.String(length=100), nullable=False),
            sa.Column("target_id", sa.String(length=36), nullable=True),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_audit_logs_actor_user_id"), "audit_logs", ["actor_user_id"], unique=False)
        op.create_index(op.f("ix_audit_logs_target_id"), "audit_logs", ["target_id"], unique=False)
        op.create_index("ix_audit_logs_action_created_at", "audit_logs", ["action", "created_at"], unique=False)
        op.create_index(
            "ix_audit_logs_target_created_at",
            "audit_logs",
            ["target_type", "target_id", "created_at"],
            unique=False,
        )


def downgrade() -> None:
    for table_name in (
        "audit_logs",
        "approvals",
        "reconciliations",
        "ncrs",
        "transfer_lines",
        "transfers",
        "issue_lines",
        "issues",
        "delivery_lines",
        "deliveries",
        "location_stock",
        "item_prices",
        "period_locations",
        "periods",
        "suppliers",
        "locations",
        "items",
    ):
        op.drop_table(table_name)
