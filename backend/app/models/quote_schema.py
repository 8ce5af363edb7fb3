"""
Request / response schemas for the quote costing API.

Every mutating service call takes one of the command objects below; nothing is
read from ambient screen state.  Output models are built from the domain
records in ``costing_types`` by the ``*_out`` helpers at the bottom.
"""
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, Field

from app.models.costing_types import (
    AttachmentRecord,
    ClusterRecord,
    FixedMarkup,
    ItemType,
    LineRecord,
    Markup,
    MarkupType,
    PercentageMarkup,
    QuoteItemRecord,
    QuoteRecord,
    TextAlign,
)


def _non_empty(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("description must not be empty")
    return value


Description = Annotated[str, AfterValidator(_non_empty)]


# ── Quotes ───────────────────────────────────────────────────────────────────

class CreateQuote(BaseModel):
    quote_number: str = Field(..., min_length=1, max_length=50)
    customer_name: Optional[str] = None


class CopyQuote(BaseModel):
    quote_number: str = Field(..., min_length=1, max_length=50, description="Number for the new quote")


# ── Items ────────────────────────────────────────────────────────────────────

class CreateManualItem(BaseModel):
    description: Description
    qty: float = Field(1.0, ge=0)
    unit_price: float = Field(0.0, ge=0)


class CreateProductItem(BaseModel):
    product_id: int = Field(..., gt=0)
    qty: float = Field(1.0, gt=0)
    explode: bool = True
    include_labour: bool = True
    include_overhead: bool = False
    attach_image: bool = True
    selected_options: Dict[str, str] = Field(default_factory=dict)


def _text_item_type(value: ItemType) -> ItemType:
    if value is ItemType.PRICED:
        raise ValueError("text items are headings or notes")
    return value


class CreateTextItem(BaseModel):
    description: Description
    item_type: Annotated[ItemType, AfterValidator(_text_item_type)] = ItemType.HEADING
    text_align: TextAlign = TextAlign.LEFT


class UpdateItem(BaseModel):
    """Field-wise patch; only fields present in the request are written."""
    description: Optional[Description] = None
    qty: Optional[float] = Field(None, ge=0)
    unit_price: Optional[float] = Field(None, ge=0)
    text_align: Optional[TextAlign] = None
    bullet_points: Optional[str] = None
    internal_notes: Optional[str] = None
    selected_options: Optional[Dict[str, str]] = None


class ReorderItems(BaseModel):
    item_ids: List[str] = Field(..., min_length=1)


class MoveItem(BaseModel):
    direction: Literal["up", "down"]


class SetItemPrice(BaseModel):
    price: float = Field(..., ge=0)


# ── Clusters ─────────────────────────────────────────────────────────────────

class PercentageMarkupIn(BaseModel):
    type: Literal["percentage"] = "percentage"
    value: float = 0.0

    def to_markup(self) -> Markup:
        return PercentageMarkup(self.value)


class FixedMarkupIn(BaseModel):
    type: Literal["fixed"] = "fixed"
    value: float = 0.0

    def to_markup(self) -> Markup:
        return FixedMarkup(self.value)


MarkupIn = Annotated[Union[PercentageMarkupIn, FixedMarkupIn], Field(discriminator="type")]


class EnsureCluster(BaseModel):
    name: Optional[str] = None


class UpdateCluster(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    markup: Optional[MarkupIn] = None


class SwitchMarkupType(BaseModel):
    markup_type: MarkupType


# ── Lines ────────────────────────────────────────────────────────────────────

class ManualEntry(BaseModel):
    entry_type: Literal["manual"] = "manual"
    description: Description
    qty: float = Field(1.0, ge=0)
    unit_cost: Optional[float] = Field(None, ge=0)
    include_in_markup: bool = True


class ComponentEntry(BaseModel):
    entry_type: Literal["component"] = "component"
    component_id: int = Field(..., gt=0)
    qty: float = Field(1.0, ge=0)
    supplier_component_id: Optional[int] = None
    override_unit_cost: Optional[float] = Field(
        None, ge=0, description="Manual cost; replaces the chosen offer's price"
    )
    require_supplier: bool = True


class ProductEntry(BaseModel):
    entry_type: Literal["product"] = "product"
    product_id: int = Field(..., gt=0)
    qty: float = Field(1.0, gt=0)
    explode: bool = True
    include_labour: bool = True
    include_overhead: bool = False
    selected_options: Dict[str, str] = Field(default_factory=dict)


class CollectionEntry(BaseModel):
    entry_type: Literal["collection"] = "collection"
    collection_id: int = Field(..., gt=0)
    multiplier: float = Field(1.0, gt=0)


LineEntry = Union[ManualEntry, ComponentEntry, ProductEntry, CollectionEntry]


class UpdateLine(BaseModel):
    description: Optional[Description] = None
    qty: Optional[float] = Field(None, ge=0)
    unit_cost: Optional[float] = Field(None, ge=0)
    include_in_markup: Optional[bool] = None
    sort_order: Optional[int] = None
    cutlist_slot: Optional[str] = None


# ── Output ───────────────────────────────────────────────────────────────────

class MarkupOut(BaseModel):
    type: MarkupType
    value: float


class LineOut(BaseModel):
    id: str
    cluster_id: str
    line_type: str
    description: str
    qty: float
    unit_cost: Optional[float] = None
    line_total: float
    unknown_cost: bool
    component_id: Optional[int] = None
    supplier_component_id: Optional[int] = None
    product_id: Optional[int] = None
    include_in_markup: bool = True
    sort_order: int = 0
    labor_type: Optional[str] = None
    hours: Optional[float] = None
    rate: Optional[float] = None
    cutlist_slot: Optional[str] = None


class ClusterOut(BaseModel):
    id: str
    item_id: str
    name: str
    position: int
    markup: MarkupOut
    lines: List[LineOut] = []


class ClusterSummaryOut(BaseModel):
    cluster_id: Optional[str]
    subtotal: float
    markup_base: float
    markup: MarkupOut
    markup_amount: float
    total: float
    line_count: int
    unknown_cost_line_ids: List[str] = []


class AttachmentOut(BaseModel):
    id: str
    quote_id: str
    item_id: Optional[str] = None
    file_url: str
    mime_type: Optional[str] = None
    original_name: Optional[str] = None
    file_size: Optional[int] = None
    display_in_quote: bool = True
    display_order: int = 0


class ItemOut(BaseModel):
    id: str
    quote_id: str
    description: str
    qty: float
    unit_price: float
    item_type: ItemType
    text_align: TextAlign
    bullet_points: Optional[str] = None
    internal_notes: Optional[str] = None
    selected_options: Dict[str, str] = {}
    position: int
    clusters: List[ClusterOut] = []


class QuoteOut(BaseModel):
    id: str
    quote_number: str
    customer_name: Optional[str] = None
    status: str
    items: List[ItemOut] = []
    attachments: List[AttachmentOut] = []


class CommandResult(BaseModel):
    """Mutation response: the touched record plus any non-fatal notices."""
    item: Optional[ItemOut] = None
    cluster: Optional[ClusterOut] = None
    lines: List[LineOut] = []
    notices: List[str] = []


class DuplicateOut(BaseModel):
    item: ItemOut
    attachments_copied: int
    attachments_skipped: int


def markup_out(markup: Markup) -> MarkupOut:
    return MarkupOut(type=markup.markup_type, value=markup.value)


def line_out(line: LineRecord) -> LineOut:
    return LineOut(
        id=line.id,
        cluster_id=line.cluster_id,
        line_type=line.line_type.value,
        description=line.description,
        qty=line.qty,
        unit_cost=line.unit_cost,
        line_total=line.line_total,
        unknown_cost=line.has_unknown_cost,
        component_id=line.component_id,
        supplier_component_id=line.supplier_component_id,
        product_id=line.product_id,
        include_in_markup=line.include_in_markup,
        sort_order=line.sort_order,
        labor_type=line.labor_type.value if line.labor_type else None,
        hours=line.hours,
        rate=line.rate,
        cutlist_slot=line.cutlist_slot,
    )


def cluster_out(cluster: ClusterRecord) -> ClusterOut:
    return ClusterOut(
        id=cluster.id,
        item_id=cluster.item_id,
        name=cluster.name,
        position=cluster.position,
        markup=markup_out(cluster.markup),
        lines=[line_out(line) for line in cluster.lines],
    )


def item_out(item: QuoteItemRecord) -> ItemOut:
    return ItemOut(
        id=item.id,
        quote_id=item.quote_id,
        description=item.description,
        qty=item.qty,
        unit_price=item.unit_price,
        item_type=item.item_type,
        text_align=item.text_align,
        bullet_points=item.bullet_points,
        internal_notes=item.internal_notes,
        selected_options=dict(item.selected_options or {}),
        position=item.position,
        clusters=[cluster_out(c) for c in item.clusters],
    )


def attachment_out(att: AttachmentRecord) -> AttachmentOut:
    return AttachmentOut(
        id=att.id,
        quote_id=att.quote_id,
        item_id=att.item_id,
        file_url=att.file_url,
        mime_type=att.mime_type,
        original_name=att.original_name,
        file_size=att.file_size,
        display_in_quote=att.display_in_quote,
        display_order=att.display_order,
    )


def quote_out(
    quote: QuoteRecord,
    items: List[QuoteItemRecord],
    attachments: Optional[List[AttachmentRecord]] = None,
) -> QuoteOut:
    return QuoteOut(
        id=quote.id,
        quote_number=quote.quote_number,
        customer_name=quote.customer_name,
        status=quote.status,
        items=[item_out(i) for i in items],
        attachments=[attachment_out(a) for a in attachments or []],
    )
