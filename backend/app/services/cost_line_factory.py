"""
Cost Line Factory: converts BOM / BOL rows, collection bundles and operator
entries into concrete cost lines for a cluster.

Every produced line is a snapshot: qty and unit_cost are computed once here
and never re-derived from the catalog afterwards.

Labour conversion:
    hours   = time_required            (time_unit = hours)
            = time_required / 60       (minutes)
            = time_required / 3600     (seconds)
    piece   → qty = labour.quantity × order_qty,          rate = piece_rate or 0
    hourly  → qty = labour.quantity × order_qty × hours,  rate = hourly_rate or 0
"""
import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from app.models.costing_types import (
    BomRow,
    CollectionRow,
    ComponentRecord,
    ExplosionResult,
    LaborRow,
    LineDraft,
    LineType,
    MarkupType,
    OverheadBasis,
    OverheadRow,
    PayType,
    ProductRecord,
    SelectedOptions,
    TimeUnit,
    round_money,
)
from app.services.catalog_resolver import CatalogResolver
from app.services.costing_config import (
    COMPONENT_FALLBACK_DESCRIPTION,
    JOB_FALLBACK_NAME,
    LABOUR_CATEGORY_SEPARATOR,
    LABOUR_DESCRIPTION_PREFIX,
    MINUTES_PER_HOUR,
    OVERHEAD_DESCRIPTION_PREFIX,
    SECONDS_PER_HOUR,
)
from app.services.errors import ExplosionError
from app.services.perf_monitor import timed_async
from app.services.supplier_pricing import PriceSelection

logger = logging.getLogger("quotecost-lines")


# ── Pure conversions ──────────────────────────────────────────────────────────

def hours_from(time_required: Optional[float], time_unit: TimeUnit) -> float:
    value = float(time_required or 0.0)
    if time_unit is TimeUnit.MINUTES:
        return value / MINUTES_PER_HOUR
    if time_unit is TimeUnit.SECONDS:
        return value / SECONDS_PER_HOUR
    return value


def component_description(component_id: int, components: Dict[int, ComponentRecord]) -> str:
    record = components.get(component_id)
    if record is not None and (record.description or record.internal_code):
        return record.description or record.internal_code
    return COMPONENT_FALLBACK_DESCRIPTION.format(component_id=component_id)


def labour_description(row: LaborRow) -> str:
    job = row.job_name or JOB_FALLBACK_NAME.format(job_id=row.job_id)
    category = f"{row.category_name}{LABOUR_CATEGORY_SEPARATOR}" if row.category_name else ""
    return f"{LABOUR_DESCRIPTION_PREFIX}{category}{job}"


def component_line_from_bom(
    row: BomRow, order_qty: float, components: Dict[int, ComponentRecord]
) -> LineDraft:
    return LineDraft(
        line_type=LineType.COMPONENT,
        description=component_description(row.component_id, components),
        qty=float(row.quantity_required) * float(order_qty),
        unit_cost=row.unit_cost,
        component_id=row.component_id,
        supplier_component_id=row.supplier_component_id,
        include_in_markup=True,
        sort_order=0,
    )


def labor_line_from_bol(row: LaborRow, order_qty: float) -> LineDraft:
    if row.pay_type is PayType.PIECE:
        qty = float(row.quantity) * float(order_qty)
        rate = float(row.piece_rate) if row.piece_rate is not None else 0.0
        hours = None
    else:
        hours = hours_from(row.time_required, row.time_unit)
        qty = float(row.quantity) * float(order_qty) * hours
        rate = float(row.hourly_rate) if row.hourly_rate is not None else 0.0

    return LineDraft(
        line_type=LineType.LABOR,
        description=labour_description(row),
        qty=qty,
        unit_cost=rate,
        include_in_markup=True,
        sort_order=0,
        labor_type=row.pay_type,
        hours=hours,
        rate=rate,
    )


def overhead_lines(
    rows: Sequence[OverheadRow],
    order_qty: float,
    component_lines: Sequence[LineDraft],
    labor_lines: Sequence[LineDraft],
) -> List[LineDraft]:
    """
    Fixed elements scale with the order quantity; percentage elements are
    priced off the material / labour / total value of the lines just built.
    """
    materials = sum(line.line_total for line in component_lines)
    labour = sum(line.line_total for line in labor_lines)
    basis_totals = {
        OverheadBasis.MATERIALS: materials,
        OverheadBasis.LABOR: labour,
        OverheadBasis.TOTAL: materials + labour,
    }

    out: List[LineDraft] = []
    for row in rows:
        if row.cost_type is MarkupType.PERCENTAGE:
            basis = basis_totals[row.percentage_basis or OverheadBasis.TOTAL]
            qty = float(row.quantity)
            unit_cost = round_money(basis * float(row.value) / 100.0)
        else:
            qty = float(row.quantity) * float(order_qty)
            unit_cost = float(row.value)
        out.append(LineDraft(
            line_type=LineType.OVERHEAD,
            description=f"{OVERHEAD_DESCRIPTION_PREFIX}{row.name}",
            qty=qty,
            unit_cost=unit_cost,
            include_in_markup=True,
            sort_order=0,
        ))
    return out


def collection_lines(
    rows: Sequence[CollectionRow],
    multiplier: float,
    components: Dict[int, ComponentRecord],
) -> List[LineDraft]:
    return [
        LineDraft(
            line_type=LineType.COMPONENT,
            description=row.description or component_description(row.component_id, components),
            qty=float(row.quantity_required) * float(multiplier),
            unit_cost=float(row.price) if row.price is not None else None,
            component_id=row.component_id,
            supplier_component_id=row.supplier_component_id,
            include_in_markup=True,
            sort_order=0,
        )
        for row in rows
    ]


def manual_line(description: str, qty: float, unit_cost: Optional[float]) -> LineDraft:
    return LineDraft(
        line_type=LineType.MANUAL,
        description=description.strip(),
        qty=float(qty),
        unit_cost=round_money(unit_cost) if unit_cost is not None else None,
    )


def catalog_component_line(
    component: ComponentRecord, selection: PriceSelection, qty: float
) -> LineDraft:
    """A single catalog component priced from the operator's supplier choice."""
    base = component.description or component.internal_code or COMPONENT_FALLBACK_DESCRIPTION.format(
        component_id=component.component_id
    )
    offer = selection.selected
    description = f"{base} ({offer.supplier})" if offer is not None and offer.supplier else base
    return LineDraft(
        line_type=LineType.COMPONENT,
        description=description,
        qty=float(qty),
        unit_cost=selection.effective_unit_cost,
        component_id=component.component_id,
        supplier_component_id=offer.supplier_component_id if offer is not None else None,
    )


def product_reference_line(product: ProductRecord, qty: float) -> LineDraft:
    """Unexploded product: one line carrying the product, cost to be filled in."""
    return LineDraft(
        line_type=LineType.PRODUCT,
        description=product.name or product.internal_code,
        qty=float(qty),
        unit_cost=None,
        product_id=product.product_id,
    )


# ── Factory ───────────────────────────────────────────────────────────────────

class CostLineFactory:

    def __init__(self, resolver: CatalogResolver) -> None:
        self.resolver = resolver

    @timed_async
    async def explode_product(
        self,
        product_id: int,
        qty: float,
        selected_options: Optional[SelectedOptions] = None,
        include_labour: bool = True,
        include_overhead: bool = False,
    ) -> ExplosionResult:
        """
        Resolve BOM and BOL concurrently and build the cost lines.

        Either fetch failing aborts the whole explosion with ExplosionError so
        no partial set of lines is ever produced.
        """
        async def _no_labour() -> List[LaborRow]:
            return []

        try:
            bom_rows, labor_rows = await asyncio.gather(
                self.resolver.resolve_effective_bom(product_id, selected_options),
                self.resolver.resolve_labor(product_id) if include_labour else _no_labour(),
            )
            overhead_rows = await self.resolver.resolve_overheads(product_id) if include_overhead else []
        except Exception as exc:
            logger.error("Product explosion failed", extra={"product_id": product_id}, exc_info=True)
            raise ExplosionError(
                f"Could not resolve costing for product {product_id}", product_id=product_id
            ) from exc

        components = await self.resolver.resolve_component_descriptions(r.component_id for r in bom_rows)
        result = ExplosionResult(
            component_lines=[component_line_from_bom(r, qty, components) for r in bom_rows],
            labor_lines=[labor_line_from_bol(r, qty) for r in labor_rows],
        )
        if overhead_rows:
            result.overhead_lines = overhead_lines(
                overhead_rows, qty, result.component_lines, result.labor_lines
            )

        logger.info(
            "Product exploded: %d component / %d labour / %d overhead lines",
            len(result.component_lines), len(result.labor_lines), len(result.overhead_lines),
            extra={"product_id": product_id},
        )
        return result

    async def expand_collection(self, collection_id: int, multiplier: float = 1.0) -> List[LineDraft]:
        rows = await self.resolver.resolve_collection(collection_id)
        missing = [r.component_id for r in rows if not r.description]
        components = await self.resolver.resolve_component_descriptions(missing) if missing else {}
        return collection_lines(rows, multiplier, components)
