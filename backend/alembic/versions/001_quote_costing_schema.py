"""quote_costing_schema

Revision ID: 001_quote_costing
Revises:
Create Date: 2026-10-19

Creates the catalog tables read by the costing engine:
- components, suppliers, suppliercomponents
- products, billofmaterials (option-scoped rows), product_bom_links, product_images
- job_categories, jobs, billoflabour, piece_work_rates, job_hourly_rates
- overhead_cost_elements, product_overhead_costs
- bom_collections, bom_collection_items

and the quote tables it writes:
- quotes, quote_items, quote_item_clusters (unique item_id + position),
  quote_cluster_lines, quote_attachments

Tables are only created when missing, so the migration is safe to run after
Base.metadata.create_all().
"""
import logging
from alembic import op
import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision = '001_quote_costing'
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger("alembic.001")


def _table_exists(conn, table_name: str) -> bool:
    result = conn.execute(
        text(
            "SELECT EXISTS("
            "  SELECT 1 FROM information_schema.tables"
            "  WHERE table_name = :tname"
            ")"
        ),
        {"tname": table_name},
    )
    return bool(result.scalar())


def _money(precision: int = 12, scale: int = 2):
    return sa.Numeric(precision, scale)


def _qty():
    return sa.Numeric(14, 4)


def _uuid_pk():
    return sa.Column("id", UUID(as_uuid=False), primary_key=True)


def _create(conn, name: str, *columns, **kw) -> None:
    if _table_exists(conn, name):
        logger.info(f"{name} exists, skipping")
        return
    op.create_table(name, *columns, **kw)


def upgrade() -> None:
    conn = op.get_bind()

    # ── catalog: components / suppliers ──────────────────────────────────────
    _create(
        conn, "components",
        sa.Column("component_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("internal_code", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text),
    )
    _create(
        conn, "suppliers",
        sa.Column("supplier_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
    )
    _create(
        conn, "suppliercomponents",
        sa.Column("supplier_component_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("component_id", sa.Integer, sa.ForeignKey("components.component_id"), nullable=False, index=True),
        sa.Column("supplier_id", sa.Integer, sa.ForeignKey("suppliers.supplier_id"), nullable=False),
        sa.Column("price", _money()),
        sa.Column("lead_time", sa.Integer),
        sa.Column("min_order_quantity", _qty()),
    )

    # ── catalog: products / BOM ──────────────────────────────────────────────
    _create(
        conn, "products",
        sa.Column("product_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("internal_code", sa.String(100), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text),
    )
    _create(
        conn, "billofmaterials",
        sa.Column("bom_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("component_id", sa.Integer, sa.ForeignKey("components.component_id"), nullable=False),
        sa.Column("quantity_required", _qty(), nullable=False, server_default="1"),
        sa.Column("supplier_component_id", sa.Integer, sa.ForeignKey("suppliercomponents.supplier_component_id")),
        sa.Column("option_group_code", sa.String(50)),
        sa.Column("option_value_code", sa.String(50)),
    )
    _create(
        conn, "product_bom_links",
        sa.Column("link_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("sub_product_id", sa.Integer, sa.ForeignKey("products.product_id"), nullable=False),
        sa.Column("scale", _qty(), nullable=False, server_default="1"),
        sa.UniqueConstraint("product_id", "sub_product_id", name="uq_bom_link"),
    )
    _create(
        conn, "product_images",
        sa.Column("image_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("image_url", sa.Text, nullable=False),
        sa.Column("original_name", sa.String(255)),
        sa.Column("is_primary", sa.Boolean, server_default=sa.false()),
        sa.Column("display_order", sa.Integer, server_default="0"),
    )

    # ── catalog: labour ──────────────────────────────────────────────────────
    _create(
        conn, "job_categories",
        sa.Column("category_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("current_hourly_rate", _money(10, 2)),
    )
    _create(
        conn, "jobs",
        sa.Column("job_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category_id", sa.Integer, sa.ForeignKey("job_categories.category_id")),
    )
    _create(
        conn, "billoflabour",
        sa.Column("bol_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("job_id", sa.Integer, sa.ForeignKey("jobs.job_id"), nullable=False),
        sa.Column("pay_type", sa.String(10), nullable=False, server_default="hourly"),
        sa.Column("time_required", _qty()),
        sa.Column("time_unit", sa.String(10), nullable=False, server_default="hours"),
        sa.Column("quantity", _qty(), nullable=False, server_default="1"),
        sa.Column("piece_rate", _money(10, 4)),
        sa.Column("hourly_rate", _money(10, 4)),
    )
    _create(
        conn, "piece_work_rates",
        sa.Column("rate_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("job_id", sa.Integer, sa.ForeignKey("jobs.job_id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id", ondelete="CASCADE")),
        sa.Column("rate", _money(10, 4), nullable=False),
        sa.Column("effective_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date),
        sa.Index("ix_piece_rate_lookup", "job_id", "product_id", "effective_date"),
    )
    _create(
        conn, "job_hourly_rates",
        sa.Column("rate_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("job_id", sa.Integer, sa.ForeignKey("jobs.job_id", ondelete="CASCADE"), nullable=False),
        sa.Column("hourly_rate", _money(10, 4), nullable=False),
        sa.Column("effective_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date),
        sa.Index("ix_hourly_rate_lookup", "job_id", "effective_date"),
    )

    # ── catalog: overheads / collections ─────────────────────────────────────
    _create(
        conn, "overhead_cost_elements",
        sa.Column("element_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("cost_type", sa.String(20), nullable=False, server_default="fixed"),
        sa.Column("default_value", _money(12, 4), nullable=False, server_default="0"),
        sa.Column("percentage_basis", sa.String(20)),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
    )
    _create(
        conn, "product_overhead_costs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("element_id", sa.Integer, sa.ForeignKey("overhead_cost_elements.element_id"), nullable=False),
        sa.Column("quantity", _qty(), nullable=False, server_default="1"),
        sa.Column("override_value", _money(12, 4)),
        sa.UniqueConstraint("product_id", "element_id", name="uq_product_overhead"),
    )
    _create(
        conn, "bom_collections",
        sa.Column("collection_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text),
    )
    _create(
        conn, "bom_collection_items",
        sa.Column("item_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("collection_id", sa.Integer, sa.ForeignKey("bom_collections.collection_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("component_id", sa.Integer, sa.ForeignKey("components.component_id"), nullable=False),
        sa.Column("quantity_required", _qty(), nullable=False, server_default="1"),
        sa.Column("supplier_component_id", sa.Integer, sa.ForeignKey("suppliercomponents.supplier_component_id")),
        sa.Column("sort_order", sa.Integer, server_default="0"),
    )

    # ── quotes ───────────────────────────────────────────────────────────────
    _create(
        conn, "quotes",
        _uuid_pk(),
        sa.Column("quote_number", sa.String(50), nullable=False, unique=True),
        sa.Column("customer_name", sa.String(255)),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    _create(
        conn, "quote_items",
        _uuid_pk(),
        sa.Column("quote_id", UUID(as_uuid=False), sa.ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("qty", _qty(), nullable=False, server_default="1"),
        sa.Column("unit_price", _money(), nullable=False, server_default="0"),
        sa.Column("item_type", sa.String(10), nullable=False, server_default="priced"),
        sa.Column("text_align", sa.String(10), nullable=False, server_default="left"),
        sa.Column("bullet_points", sa.Text),
        sa.Column("internal_notes", sa.Text),
        sa.Column("selected_options", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    _create(
        conn, "quote_item_clusters",
        _uuid_pk(),
        sa.Column("item_id", UUID(as_uuid=False), sa.ForeignKey("quote_items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("markup_type", sa.String(20), nullable=False, server_default="percentage"),
        sa.Column("markup_value", _money(12, 4), nullable=False, server_default="0"),
        sa.UniqueConstraint("item_id", "position", name="uq_cluster_item_position"),
    )
    _create(
        conn, "quote_cluster_lines",
        _uuid_pk(),
        sa.Column("seq", sa.BigInteger, sa.Identity(), nullable=False),
        sa.Column("cluster_id", UUID(as_uuid=False), sa.ForeignKey("quote_item_clusters.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("line_type", sa.String(20), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("qty", _qty(), nullable=False, server_default="1"),
        sa.Column("unit_cost", _money(12, 4)),
        sa.Column("component_id", sa.Integer),
        sa.Column("supplier_component_id", sa.Integer),
        sa.Column("product_id", sa.Integer),
        sa.Column("include_in_markup", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("labor_type", sa.String(10)),
        sa.Column("hours", _qty()),
        sa.Column("rate", _money(10, 4)),
        sa.Column("cutlist_slot", sa.String(50)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    _create(
        conn, "quote_attachments",
        _uuid_pk(),
        sa.Column("quote_id", UUID(as_uuid=False), sa.ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("item_id", UUID(as_uuid=False), sa.ForeignKey("quote_items.id", ondelete="CASCADE"), index=True),
        sa.Column("file_url", sa.Text, nullable=False),
        sa.Column("mime_type", sa.String(100)),
        sa.Column("original_name", sa.String(255)),
        sa.Column("file_size", sa.Integer),
        sa.Column("display_in_quote", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("display_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    logger.info("Migration 001_quote_costing complete.")


def downgrade() -> None:
    for table in (
        "quote_attachments", "quote_cluster_lines", "quote_item_clusters", "quote_items", "quotes",
        "bom_collection_items", "bom_collections", "product_overhead_costs", "overhead_cost_elements",
        "job_hourly_rates", "piece_work_rates", "billoflabour", "jobs", "job_categories",
        "product_images", "product_bom_links", "billofmaterials", "products",
        "suppliercomponents", "suppliers", "components",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
