"""
Domain value types for the quote costing engine.

Rows coming back from the catalog collaborators (BOM, BOL, supplier offers,
collection bundles, overheads) are plain dataclasses; lines produced by the
factory are ``LineDraft`` objects until a store persists them.  Markup is a
tagged variant so the percentage / fixed interpretation travels with the
value instead of living in screen state.
"""
import enum
import math
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional, Union


# ── Enumerations ─────────────────────────────────────────────────────────────

class ItemType(str, enum.Enum):
    PRICED = "priced"
    HEADING = "heading"
    NOTE = "note"


class TextAlign(str, enum.Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class LineType(str, enum.Enum):
    MANUAL = "manual"
    COMPONENT = "component"
    PRODUCT = "product"
    LABOR = "labor"
    CLUSTER = "cluster"
    OVERHEAD = "overhead"


class PayType(str, enum.Enum):
    PIECE = "piece"
    HOURLY = "hourly"


class TimeUnit(str, enum.Enum):
    HOURS = "hours"
    MINUTES = "minutes"
    SECONDS = "seconds"


class MarkupType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class OverheadBasis(str, enum.Enum):
    MATERIALS = "materials"
    LABOR = "labor"
    TOTAL = "total"


SelectedOptions = Dict[str, str]


def round_money(value: float) -> float:
    """Round to cents, halves away from zero for positive amounts (matches 2dp quoting)."""
    return math.floor(float(value) * 100 + 0.5) / 100


# ── Markup (tagged variant) ──────────────────────────────────────────────────

@dataclass(frozen=True)
class PercentageMarkup:
    value: float = 0.0

    @property
    def markup_type(self) -> MarkupType:
        return MarkupType.PERCENTAGE


@dataclass(frozen=True)
class FixedMarkup:
    value: float = 0.0

    @property
    def markup_type(self) -> MarkupType:
        return MarkupType.FIXED


Markup = Union[PercentageMarkup, FixedMarkup]


def markup_from_columns(markup_type: Optional[str], value: Optional[float]) -> Markup:
    """Rebuild the variant from its persisted ``(markup_type, markup_value)`` pair."""
    amount = float(value or 0.0)
    if MarkupType(markup_type or MarkupType.PERCENTAGE.value) is MarkupType.FIXED:
        return FixedMarkup(amount)
    return PercentageMarkup(amount)


def empty_markup(markup_type: MarkupType) -> Markup:
    if markup_type is MarkupType.FIXED:
        return FixedMarkup(0.0)
    return PercentageMarkup(0.0)


# ── Catalog rows ─────────────────────────────────────────────────────────────

@dataclass
class BomRow:
    component_id: int
    quantity_required: float
    unit_cost: Optional[float] = None
    supplier_component_id: Optional[int] = None
    source: str = "direct"              # direct | effective | link
    sub_product_id: Optional[int] = None


@dataclass
class LaborRow:
    job_id: int
    job_name: Optional[str]
    pay_type: PayType
    time_required: Optional[float]
    time_unit: TimeUnit = TimeUnit.HOURS
    quantity: float = 1.0
    category_name: Optional[str] = None
    piece_rate: Optional[float] = None
    hourly_rate: Optional[float] = None


@dataclass
class ComponentRecord:
    component_id: int
    internal_code: str = ""
    description: Optional[str] = None


@dataclass
class ProductRecord:
    product_id: int
    internal_code: str = ""
    name: str = ""


@dataclass
class SupplierOffer:
    supplier_component_id: int
    component_id: int
    supplier: str = ""
    price: Optional[float] = None
    lead_time: Optional[int] = None
    min_order_quantity: Optional[float] = None


@dataclass
class CollectionRow:
    component_id: int
    quantity_required: float
    price: Optional[float] = None
    supplier_component_id: Optional[int] = None
    description: Optional[str] = None


@dataclass
class OverheadRow:
    element_id: int
    name: str
    cost_type: MarkupType                 # fixed amount or percentage of a basis
    value: float
    quantity: float = 1.0
    percentage_basis: Optional[OverheadBasis] = None


@dataclass
class ProductImage:
    url: str
    original_name: Optional[str] = None


# ── Lines ────────────────────────────────────────────────────────────────────

@dataclass
class LineDraft:
    """An unpersisted cost line.  qty / unit_cost are frozen at creation."""
    line_type: LineType
    description: str
    qty: float
    unit_cost: Optional[float] = None
    component_id: Optional[int] = None
    supplier_component_id: Optional[int] = None
    product_id: Optional[int] = None
    include_in_markup: bool = True
    sort_order: int = 0
    labor_type: Optional[PayType] = None
    hours: Optional[float] = None
    rate: Optional[float] = None
    cutlist_slot: Optional[str] = None

    @property
    def line_total(self) -> float:
        return float(self.qty or 0.0) * float(self.unit_cost or 0.0)

    @property
    def has_unknown_cost(self) -> bool:
        return not self.unit_cost


@dataclass
class ExplosionResult:
    component_lines: List[LineDraft] = field(default_factory=list)
    labor_lines: List[LineDraft] = field(default_factory=list)
    overhead_lines: List[LineDraft] = field(default_factory=list)

    @property
    def all_lines(self) -> List[LineDraft]:
        return [*self.component_lines, *self.labor_lines, *self.overhead_lines]

    @property
    def is_empty(self) -> bool:
        return not self.component_lines and not self.labor_lines


def as_draft(line: LineDraft) -> LineDraft:
    """Strip a persisted line down to its unpersisted fields (ids dropped)."""
    return LineDraft(**{f.name: getattr(line, f.name) for f in fields(LineDraft)})


# ── Persisted records (as returned by a QuoteStore) ──────────────────────────

@dataclass(kw_only=True)
class LineRecord(LineDraft):
    id: str
    cluster_id: str


@dataclass
class ClusterRecord:
    id: str
    item_id: str
    name: str
    position: int = 0
    markup: Markup = field(default_factory=PercentageMarkup)
    lines: List[LineRecord] = field(default_factory=list)


@dataclass
class AttachmentRecord:
    id: str
    quote_id: str
    file_url: str
    item_id: Optional[str] = None
    mime_type: Optional[str] = None
    original_name: Optional[str] = None
    file_size: Optional[int] = None
    display_in_quote: bool = True
    display_order: int = 0


@dataclass
class QuoteItemRecord:
    id: str
    quote_id: str
    description: str
    qty: float = 1.0
    unit_price: float = 0.0
    item_type: ItemType = ItemType.PRICED
    text_align: TextAlign = TextAlign.LEFT
    bullet_points: Optional[str] = None
    internal_notes: Optional[str] = None
    selected_options: SelectedOptions = field(default_factory=dict)
    position: int = 0
    clusters: List[ClusterRecord] = field(default_factory=list)

    @property
    def is_priced(self) -> bool:
        return self.item_type is ItemType.PRICED


@dataclass
class QuoteRecord:
    id: str
    quote_number: str
    customer_name: Optional[str] = None
    status: str = "draft"
