"""ORM Models for the quote costing service (SQLAlchemy 2.0)"""
import uuid
from datetime import datetime, date
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Integer, BigInteger, Identity, Numeric, DateTime, Date,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from app.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# Numeric columns come back as float, not Decimal
def Money(precision: int = 12, scale: int = 2):
    return Numeric(precision, scale, asdecimal=False)


def Quantity():
    return Numeric(14, 4, asdecimal=False)


# ── CATALOG: COMPONENTS / SUPPLIERS ──────────────────────────────────────────
class Component(Base):
    __tablename__ = "components"
    component_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    internal_code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    offers: Mapped[list["SupplierComponent"]] = relationship("SupplierComponent", back_populates="component")


class Supplier(Base):
    __tablename__ = "suppliers"
    supplier_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class SupplierComponent(Base):
    __tablename__ = "suppliercomponents"
    supplier_component_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    component_id: Mapped[int] = mapped_column(Integer, ForeignKey("components.component_id"), nullable=False, index=True)
    supplier_id: Mapped[int] = mapped_column(Integer, ForeignKey("suppliers.supplier_id"), nullable=False)
    price: Mapped[Optional[float]] = mapped_column(Money())
    lead_time: Mapped[Optional[int]] = mapped_column(Integer)                 # days
    min_order_quantity: Mapped[Optional[float]] = mapped_column(Quantity())
    component: Mapped["Component"] = relationship("Component", back_populates="offers")
    supplier: Mapped["Supplier"] = relationship("Supplier")


# ── CATALOG: PRODUCTS / BOM ──────────────────────────────────────────────────
class Product(Base):
    __tablename__ = "products"
    product_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    internal_code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)


class BillOfMaterials(Base):
    """Direct BOM rows; rows with an option group only apply when that option is selected."""
    __tablename__ = "billofmaterials"
    bom_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False, index=True)
    component_id: Mapped[int] = mapped_column(Integer, ForeignKey("components.component_id"), nullable=False)
    quantity_required: Mapped[float] = mapped_column(Quantity(), nullable=False, default=1.0)
    supplier_component_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("suppliercomponents.supplier_component_id"))
    option_group_code: Mapped[Optional[str]] = mapped_column(String(50))
    option_value_code: Mapped[Optional[str]] = mapped_column(String(50))


class ProductBomLink(Base):
    """Sub-product whose BOM / BOL rows are folded into the parent, scaled by ``scale``."""
    __tablename__ = "product_bom_links"
    link_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False, index=True)
    sub_product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.product_id"), nullable=False)
    scale: Mapped[float] = mapped_column(Quantity(), nullable=False, default=1.0)
    __table_args__ = (UniqueConstraint("product_id", "sub_product_id", name="uq_bom_link"),)


class ProductImage(Base):
    __tablename__ = "product_images"
    image_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False, index=True)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    original_name: Mapped[Optional[str]] = mapped_column(String(255))
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0)


# ── CATALOG: LABOUR ──────────────────────────────────────────────────────────
class JobCategory(Base):
    __tablename__ = "job_categories"
    category_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    current_hourly_rate: Mapped[Optional[float]] = mapped_column(Money(10, 2))


class Job(Base):
    __tablename__ = "jobs"
    job_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("job_categories.category_id"))
    category: Mapped[Optional["JobCategory"]] = relationship("JobCategory")


class BillOfLabour(Base):
    __tablename__ = "billoflabour"
    bol_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False, index=True)
    job_id: Mapped[int] = mapped_column(Integer, ForeignKey("jobs.job_id"), nullable=False)
    pay_type: Mapped[str] = mapped_column(String(10), nullable=False, default="hourly")   # piece | hourly
    time_required: Mapped[Optional[float]] = mapped_column(Quantity())
    time_unit: Mapped[str] = mapped_column(String(10), nullable=False, default="hours")  # hours | minutes | seconds
    quantity: Mapped[float] = mapped_column(Quantity(), nullable=False, default=1.0)
    # Explicit rates win over the effective-dated tables below
    piece_rate: Mapped[Optional[float]] = mapped_column(Money(10, 4))
    hourly_rate: Mapped[Optional[float]] = mapped_column(Money(10, 4))


class PieceWorkRate(Base):
    """Effective-dated piece rate; a row with ``product_id`` beats a generic one."""
    __tablename__ = "piece_work_rates"
    rate_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(Integer, ForeignKey("jobs.job_id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("products.product_id", ondelete="CASCADE"))
    rate: Mapped[float] = mapped_column(Money(10, 4), nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    __table_args__ = (Index("ix_piece_rate_lookup", "job_id", "product_id", "effective_date"),)


class JobHourlyRate(Base):
    __tablename__ = "job_hourly_rates"
    rate_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(Integer, ForeignKey("jobs.job_id", ondelete="CASCADE"), nullable=False)
    hourly_rate: Mapped[float] = mapped_column(Money(10, 4), nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    __table_args__ = (Index("ix_hourly_rate_lookup", "job_id", "effective_date"),)


# ── CATALOG: OVERHEADS / COLLECTIONS ─────────────────────────────────────────
class OverheadCostElement(Base):
    __tablename__ = "overhead_cost_elements"
    element_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    cost_type: Mapped[str] = mapped_column(String(20), nullable=False, default="fixed")     # fixed | percentage
    default_value: Mapped[float] = mapped_column(Money(12, 4), nullable=False, default=0)
    percentage_basis: Mapped[Optional[str]] = mapped_column(String(20))                      # materials | labor | total
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class ProductOverheadCost(Base):
    __tablename__ = "product_overhead_costs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False, index=True)
    element_id: Mapped[int] = mapped_column(Integer, ForeignKey("overhead_cost_elements.element_id"), nullable=False)
    quantity: Mapped[float] = mapped_column(Quantity(), nullable=False, default=1.0)
    override_value: Mapped[Optional[float]] = mapped_column(Money(12, 4))
    element: Mapped["OverheadCostElement"] = relationship("OverheadCostElement")
    __table_args__ = (UniqueConstraint("product_id", "element_id", name="uq_product_overhead"),)


class BomCollection(Base):
    __tablename__ = "bom_collections"
    collection_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    items: Mapped[list["BomCollectionItem"]] = relationship(
        "BomCollectionItem", back_populates="collection", cascade="all, delete-orphan"
    )


class BomCollectionItem(Base):
    __tablename__ = "bom_collection_items"
    item_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection_id: Mapped[int] = mapped_column(Integer, ForeignKey("bom_collections.collection_id", ondelete="CASCADE"), nullable=False, index=True)
    component_id: Mapped[int] = mapped_column(Integer, ForeignKey("components.component_id"), nullable=False)
    quantity_required: Mapped[float] = mapped_column(Quantity(), nullable=False, default=1.0)
    supplier_component_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("suppliercomponents.supplier_component_id"))
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    collection: Mapped["BomCollection"] = relationship("BomCollection", back_populates="items")


# ── QUOTES ───────────────────────────────────────────────────────────────────
class Quote(Base):
    __tablename__ = "quotes"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    quote_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    items: Mapped[list["QuoteItem"]] = relationship(
        "QuoteItem", back_populates="quote", cascade="all, delete-orphan", order_by="QuoteItem.position"
    )


class QuoteItem(Base):
    __tablename__ = "quote_items"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    quote_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    qty: Mapped[float] = mapped_column(Quantity(), nullable=False, default=1.0)
    unit_price: Mapped[float] = mapped_column(Money(), nullable=False, default=0.0)
    item_type: Mapped[str] = mapped_column(String(10), nullable=False, default="priced")   # priced | heading | note
    text_align: Mapped[str] = mapped_column(String(10), nullable=False, default="left")
    bullet_points: Mapped[Optional[str]] = mapped_column(Text)     # customer-visible
    internal_notes: Mapped[Optional[str]] = mapped_column(Text)    # staff only
    selected_options: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    quote: Mapped["Quote"] = relationship("Quote", back_populates="items")
    clusters: Mapped[list["QuoteItemCluster"]] = relationship(
        "QuoteItemCluster", back_populates="item", cascade="all, delete-orphan",
        order_by="QuoteItemCluster.position",
    )


class QuoteItemCluster(Base):
    __tablename__ = "quote_item_clusters"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    item_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("quote_items.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    markup_type: Mapped[str] = mapped_column(String(20), nullable=False, default="percentage")  # percentage | fixed
    markup_value: Mapped[float] = mapped_column(Money(12, 4), nullable=False, default=0.0)
    item: Mapped["QuoteItem"] = relationship("QuoteItem", back_populates="clusters")
    lines: Mapped[list["QuoteClusterLine"]] = relationship(
        "QuoteClusterLine", back_populates="cluster", cascade="all, delete-orphan",
        order_by=lambda: [QuoteClusterLine.sort_order, QuoteClusterLine.seq],
    )
    __table_args__ = (UniqueConstraint("item_id", "position", name="uq_cluster_item_position"),)


class QuoteClusterLine(Base):
    __tablename__ = "quote_cluster_lines"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    # Insertion order; breaks sort_order ties so exploded lines keep their order
    seq: Mapped[int] = mapped_column(BigInteger, Identity(), nullable=False)
    cluster_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("quote_item_clusters.id", ondelete="CASCADE"), nullable=False, index=True)
    line_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    qty: Mapped[float] = mapped_column(Quantity(), nullable=False, default=1.0)
    unit_cost: Mapped[Optional[float]] = mapped_column(Money(12, 4))    # null = unknown cost
    # Snapshot references only; no live join back to the catalog
    component_id: Mapped[Optional[int]] = mapped_column(Integer)
    supplier_component_id: Mapped[Optional[int]] = mapped_column(Integer)
    product_id: Mapped[Optional[int]] = mapped_column(Integer)
    include_in_markup: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    labor_type: Mapped[Optional[str]] = mapped_column(String(10))       # piece | hourly
    hours: Mapped[Optional[float]] = mapped_column(Quantity())
    rate: Mapped[Optional[float]] = mapped_column(Money(10, 4))
    cutlist_slot: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    cluster: Mapped["QuoteItemCluster"] = relationship("QuoteItemCluster", back_populates="lines")


class QuoteAttachment(Base):
    __tablename__ = "quote_attachments"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    quote_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True)
    # NULL for quote-level attachments
    item_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("quote_items.id", ondelete="CASCADE"), index=True)
    file_url: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100))
    original_name: Mapped[Optional[str]] = mapped_column(String(255))
    file_size: Mapped[Optional[int]] = mapped_column(Integer)
    display_in_quote: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
