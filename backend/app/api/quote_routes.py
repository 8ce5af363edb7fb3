"""Quote API routes: quotes, line items, costing clusters and cost lines."""
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends

from app.api.deps import get_lifecycle, http_error
from app.models.quote_schema import (
    CommandResult,
    CopyQuote,
    ClusterOut,
    ClusterSummaryOut,
    CreateManualItem,
    CreateProductItem,
    CreateQuote,
    CreateTextItem,
    DuplicateOut,
    EnsureCluster,
    ItemOut,
    LineEntry,
    LineOut,
    MoveItem,
    QuoteOut,
    ReorderItems,
    SetItemPrice,
    SwitchMarkupType,
    UpdateCluster,
    UpdateItem,
    UpdateLine,
    cluster_out,
    item_out,
    line_out,
    markup_out,
    quote_out,
)
from app.services.cluster_engine import ClusterSummary
from app.services.errors import CostingError
from app.services.item_lifecycle import ItemLifecycleManager

router = APIRouter(prefix="/api", tags=["Quotes"])
logger = logging.getLogger("quotecost-api.quotes")


def _summary_out(summary: ClusterSummary) -> ClusterSummaryOut:
    return ClusterSummaryOut(
        cluster_id=summary.cluster_id,
        subtotal=round(summary.subtotal, 2),
        markup_base=round(summary.markup_base, 2),
        markup=markup_out(summary.markup),
        markup_amount=round(summary.markup_amount, 2),
        total=round(summary.total, 2),
        line_count=summary.line_count,
        unknown_cost_line_ids=summary.unknown_cost_line_ids,
    )


async def _tree(lifecycle: ItemLifecycleManager, quote_id: str) -> QuoteOut:
    quote, items, attachments = await lifecycle.get_quote_tree(quote_id)
    return quote_out(quote, items, attachments)


# ── Quotes ───────────────────────────────────────────────────────────────────

@router.post("/quotes", response_model=QuoteOut, status_code=201)
async def create_quote(req: CreateQuote, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)):
    try:
        quote = await lifecycle.create_quote(req)
    except CostingError as e:
        raise http_error(e)
    return quote_out(quote, [])


@router.get("/quotes/{quote_id}", response_model=QuoteOut)
async def get_quote(quote_id: str, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)):
    """Quote with items, clusters and lines in position order."""
    try:
        return await _tree(lifecycle, quote_id)
    except CostingError as e:
        raise http_error(e)


@router.post("/quotes/{quote_id}/copy", response_model=QuoteOut, status_code=201)
async def copy_quote(quote_id: str, req: CopyQuote, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)):
    try:
        new_quote = await lifecycle.copy_quote(quote_id, req)
        return await _tree(lifecycle, new_quote.id)
    except CostingError as e:
        raise http_error(e)


# ── Items ────────────────────────────────────────────────────────────────────

@router.post("/quotes/{quote_id}/items/manual", response_model=ItemOut, status_code=201)
async def create_manual_item(
    quote_id: str, req: CreateManualItem, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)
):
    try:
        return item_out(await lifecycle.create_manual_item(quote_id, req))
    except CostingError as e:
        raise http_error(e)


@router.post("/quotes/{quote_id}/items/product", response_model=CommandResult, status_code=201)
async def create_product_item(
    quote_id: str, req: CreateProductItem, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)
):
    """Create an item from a product, explode its BOM / BOL into the default cluster."""
    try:
        result = await lifecycle.create_product_item(quote_id, req)
    except CostingError as e:
        raise http_error(e)
    return CommandResult(
        item=item_out(result.item),
        cluster=cluster_out(result.cluster) if result.cluster else None,
        lines=[line_out(line) for line in result.lines],
        notices=result.notices,
    )


@router.post("/quotes/{quote_id}/items/text", response_model=ItemOut, status_code=201)
async def create_text_item(
    quote_id: str, req: CreateTextItem, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)
):
    try:
        return item_out(await lifecycle.create_text_item(quote_id, req))
    except CostingError as e:
        raise http_error(e)


@router.patch("/quote-items/{item_id}", response_model=ItemOut)
async def update_item(item_id: str, req: UpdateItem, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)):
    try:
        return item_out(await lifecycle.update_item(item_id, req))
    except CostingError as e:
        raise http_error(e)


@router.delete("/quote-items/{item_id}", status_code=204)
async def delete_item(item_id: str, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)):
    try:
        await lifecycle.delete_item(item_id)
    except CostingError as e:
        raise http_error(e)


@router.post("/quote-items/{item_id}/duplicate", response_model=DuplicateOut, status_code=201)
async def duplicate_item(item_id: str, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)):
    try:
        result = await lifecycle.duplicate_item(item_id)
    except CostingError as e:
        raise http_error(e)
    return DuplicateOut(
        item=item_out(result.item),
        attachments_copied=result.attachments_copied,
        attachments_skipped=result.attachments_skipped,
    )


@router.put("/quotes/{quote_id}/items/order", response_model=list[ItemOut])
async def reorder_items(
    quote_id: str, req: ReorderItems, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)
):
    try:
        items = await lifecycle.reorder_items(quote_id, req.item_ids)
    except CostingError as e:
        raise http_error(e)
    return [item_out(i) for i in items]


@router.post("/quote-items/{item_id}/move", response_model=list[ItemOut])
async def move_item(item_id: str, req: MoveItem, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)):
    try:
        items = await lifecycle.move_item(item_id, req.direction)
    except CostingError as e:
        raise http_error(e)
    return [item_out(i) for i in items]


@router.post("/quote-items/{item_id}/price", response_model=ItemOut)
async def set_item_price(item_id: str, req: SetItemPrice, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)):
    try:
        return item_out(await lifecycle.set_item_price(item_id, req.price))
    except CostingError as e:
        raise http_error(e)


# ── Clusters ─────────────────────────────────────────────────────────────────

@router.post("/quote-items/{item_id}/clusters", response_model=ClusterOut)
async def ensure_cluster(
    item_id: str,
    req: Optional[EnsureCluster] = None,
    lifecycle: ItemLifecycleManager = Depends(get_lifecycle),
):
    """Return the item's default cluster, creating it when the item has none."""
    try:
        return cluster_out(await lifecycle.ensure_cluster(item_id, req.name if req else None))
    except CostingError as e:
        raise http_error(e)


@router.patch("/clusters/{cluster_id}", response_model=ClusterOut)
async def update_cluster(
    cluster_id: str, req: UpdateCluster, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)
):
    try:
        return cluster_out(await lifecycle.update_cluster(cluster_id, req))
    except CostingError as e:
        raise http_error(e)


@router.post("/clusters/{cluster_id}/markup-type", response_model=ClusterOut)
async def switch_markup_type(
    cluster_id: str, req: SwitchMarkupType, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)
):
    try:
        return cluster_out(await lifecycle.switch_markup_type(cluster_id, req.markup_type))
    except CostingError as e:
        raise http_error(e)


@router.get("/clusters/{cluster_id}/summary", response_model=ClusterSummaryOut)
async def cluster_summary(cluster_id: str, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)):
    try:
        return _summary_out(await lifecycle.cluster_summary(cluster_id))
    except CostingError as e:
        raise http_error(e)


@router.post("/clusters/{cluster_id}/propagate")
async def propagate_cluster_total(cluster_id: str, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)):
    """Write the cluster total into the owning item's unit price."""
    try:
        item, summary = await lifecycle.propagate_cluster_total(cluster_id)
    except CostingError as e:
        raise http_error(e)
    return {"item": item_out(item), "summary": _summary_out(summary)}


# ── Lines ────────────────────────────────────────────────────────────────────

@router.post("/clusters/{cluster_id}/lines", response_model=CommandResult, status_code=201)
async def add_line(
    cluster_id: str,
    req: Annotated[LineEntry, Body(discriminator="entry_type")],
    lifecycle: ItemLifecycleManager = Depends(get_lifecycle)
):
    try:
        result = await lifecycle.add_line(cluster_id, req)
    except CostingError as e:
        raise http_error(e)
    return CommandResult(
        cluster=cluster_out(result.cluster) if result.cluster else None,
        lines=[line_out(line) for line in result.lines],
        notices=result.notices,
    )


@router.patch("/cluster-lines/{line_id}", response_model=LineOut)
async def update_line(line_id: str, req: UpdateLine, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)):
    try:
        return line_out(await lifecycle.update_line(line_id, req))
    except CostingError as e:
        raise http_error(e)


@router.delete("/cluster-lines/{line_id}", status_code=204)
async def delete_line(line_id: str, lifecycle: ItemLifecycleManager = Depends(get_lifecycle)):
    try:
        await lifecycle.delete_line(line_id)
    except CostingError as e:
        raise http_error(e)
