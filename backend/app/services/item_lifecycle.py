"""
Item Lifecycle Manager: create / update / delete / duplicate / reorder quote
items and the clusters and lines nested under them.

Multi-step writes (product item creation, duplication, quote copy) are not
atomic at the store level.  Each one runs as a saga: every completed step
registers a compensating action, and a failure part way through runs them in
reverse before the error is raised.  Best-effort steps (product image,
attachment copies) never abort the command; they are logged and reported as
notices or counts.

Line adds and reorders are applied to the in-memory ``QuoteWorkspace`` before
the write resolves and rolled back if it fails.  Duplication reloads the
workspace from the store afterwards.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from app.models.costing_types import (
    AttachmentRecord,
    ClusterRecord,
    ItemType,
    LineDraft,
    LineRecord,
    MarkupType,
    QuoteItemRecord,
    QuoteRecord,
    as_draft,
    round_money,
)
from app.models.quote_schema import (
    CollectionEntry,
    ComponentEntry,
    CopyQuote,
    CreateManualItem,
    CreateProductItem,
    CreateQuote,
    CreateTextItem,
    LineEntry,
    ManualEntry,
    ProductEntry,
    UpdateCluster,
    UpdateItem,
    UpdateLine,
)
from app.services.attachment_service import AttachmentService
from app.services.catalog_resolver import CatalogResolver, normalize_options
from app.services.cluster_engine import ClusterSummary, MarkupDraft, summarize
from app.services.cluster_engine import switch_markup_type as markup_for_type
from app.services.cost_line_factory import (
    CostLineFactory,
    catalog_component_line,
    manual_line,
    product_reference_line,
)
from app.services.costing_config import (
    DEFAULT_CLUSTER_NAME,
    DEFAULT_CLUSTER_POSITION,
    DEFAULT_QUOTE_STATUS,
    EMPTY_COLLECTION_NOTICE,
    IMAGE_ATTACH_FAILED_NOTICE,
    NO_COSTING_LINES_NOTICE,
)
from app.services.errors import (
    CommandValidationError,
    CostingError,
    DuplicationError,
    NotFoundError,
    PersistenceError,
    ReorderError,
)
from app.services.gateways import CatalogGateway, QuoteStore
from app.services.perf_monitor import timed_async
from app.services.price_propagator import PricePropagator
from app.services.quote_workspace import QuoteWorkspace, move_in_order
from app.services.supplier_pricing import SupplierPriceResolver

logger = logging.getLogger("quotecost-lifecycle")

# Item columns carried over verbatim by duplication / quote copy
_COPIED_ITEM_FIELDS = (
    "description",
    "qty",
    "unit_price",
    "item_type",
    "text_align",
    "bullet_points",
    "internal_notes",
    "selected_options",
)


class Saga:
    """Compensating actions for one multi-step write, undone newest first."""

    def __init__(self, name: str, **context: Any) -> None:
        self.name = name
        self.context = context
        self._steps: List[Tuple[str, Callable[[], Awaitable[Any]]]] = []

    def on_rollback(self, label: str, action: Callable[[], Awaitable[Any]]) -> None:
        self._steps.append((label, action))

    async def compensate(self) -> None:
        while self._steps:
            label, action = self._steps.pop()
            try:
                await action()
            except Exception:
                # Leave the remaining steps running; the original error is what the caller sees.
                logger.error(
                    f"{self.name}: compensation '{label}' failed",
                    extra=self.context,
                    exc_info=True,
                )


@dataclass
class ItemCommandResult:
    item: Optional[QuoteItemRecord] = None
    cluster: Optional[ClusterRecord] = None
    lines: List[LineRecord] = field(default_factory=list)
    notices: List[str] = field(default_factory=list)


@dataclass
class DuplicationResult:
    item: QuoteItemRecord
    attachments_copied: int = 0
    attachments_skipped: int = 0


def _copied_fields(item: QuoteItemRecord) -> Dict[str, Any]:
    values = {name: getattr(item, name) for name in _COPIED_ITEM_FIELDS}
    values["selected_options"] = dict(item.selected_options or {})
    return values


class ItemLifecycleManager:

    def __init__(
        self,
        store: QuoteStore,
        catalog: CatalogGateway,
        attachments: AttachmentService,
        workspace: Optional[QuoteWorkspace] = None,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.attachments = attachments
        self.workspace = workspace or QuoteWorkspace()
        self.resolver = CatalogResolver(catalog)
        self.suppliers = SupplierPriceResolver(catalog)
        self.factory = CostLineFactory(self.resolver)
        self.propagator = PricePropagator(store)

    # ── lookups ──────────────────────────────────────────────────────────────

    async def _require_quote(self, quote_id: str) -> QuoteRecord:
        quote = await self.store.get_quote(quote_id)
        if quote is None:
            raise NotFoundError(f"Quote {quote_id} not found", quote_id=quote_id)
        return quote

    async def _require_item(self, item_id: str) -> QuoteItemRecord:
        item = await self.store.get_item(item_id)
        if item is None:
            raise NotFoundError(f"Quote item {item_id} not found", item_id=item_id)
        return item

    async def _require_cluster(self, cluster_id: str) -> ClusterRecord:
        cluster = await self.store.get_cluster(cluster_id)
        if cluster is None:
            raise NotFoundError(f"Cluster {cluster_id} not found", cluster_id=cluster_id)
        return cluster

    async def _require_line(self, line_id: str) -> LineRecord:
        line = await self.store.get_line(line_id)
        if line is None:
            raise NotFoundError(f"Cost line {line_id} not found", line_id=line_id)
        return line

    # ── workspace ────────────────────────────────────────────────────────────

    async def refresh(self, quote_id: str) -> List[QuoteItemRecord]:
        """Reload the workspace from the store (authoritative)."""
        items = await self.store.list_items(quote_id)
        self.workspace.load(quote_id, items)
        return self.workspace.items

    async def _ensure_loaded(self, quote_id: str) -> None:
        if not self.workspace.is_loaded(quote_id):
            await self.refresh(quote_id)

    def _remember(self, item: QuoteItemRecord) -> None:
        if self.workspace.is_loaded(item.quote_id):
            self.workspace.upsert_item(item)

    async def get_quote_tree(
        self, quote_id: str
    ) -> Tuple[QuoteRecord, List[QuoteItemRecord], List[AttachmentRecord]]:
        quote = await self._require_quote(quote_id)
        items = await self.refresh(quote_id)
        try:
            attachments = await self.attachments.list_quote_attachments(quote_id)
        except Exception:
            logger.warning("Quote attachments unavailable", extra={"quote_id": quote_id}, exc_info=True)
            attachments = []
        return quote, items, attachments

    # ── quotes ───────────────────────────────────────────────────────────────

    async def create_quote(self, cmd: CreateQuote) -> QuoteRecord:
        quote = await self.store.create_quote(cmd.quote_number, cmd.customer_name, DEFAULT_QUOTE_STATUS)
        logger.info(f"Quote {quote.quote_number} created", extra={"quote_id": quote.id})
        return quote

    @timed_async
    async def copy_quote(self, quote_id: str, cmd: CopyQuote) -> QuoteRecord:
        """
        Copy a whole quote under a new number: items in order with their
        clusters and lines, then item and quote attachments best-effort.
        """
        source = await self._require_quote(quote_id)
        items = await self.store.list_items(quote_id)

        saga = Saga("copy_quote", quote_id=quote_id)
        new_quote = await self.store.create_quote(cmd.quote_number, source.customer_name, DEFAULT_QUOTE_STATUS)
        saga.on_rollback("delete quote copy", lambda: self.store.delete_quote(new_quote.id))

        copies: List[Tuple[QuoteItemRecord, QuoteItemRecord]] = []
        try:
            for item in items:
                copies.append((item, await self._copy_item_tree(item, new_quote.id, saga)))
        except Exception as exc:
            logger.error("Quote copy failed, removing partial copy", extra={"quote_id": quote_id}, exc_info=True)
            await saga.compensate()
            raise DuplicationError(f"Could not copy quote {source.quote_number}", quote_id=quote_id) from exc

        skipped = 0
        for original, duplicate in copies:
            skipped += (await self._copy_attachments(original, new_quote.id, duplicate.id))[1]
        try:
            quote_attachments = await self.attachments.list_quote_attachments(quote_id)
        except Exception:
            logger.warning("Quote attachments unavailable", extra={"quote_id": quote_id}, exc_info=True)
            quote_attachments = []
        for att in quote_attachments:
            try:
                await self.attachments.duplicate(att, new_quote.id, None)
            except Exception:
                logger.warning("Quote attachment copy skipped", extra={"quote_id": quote_id}, exc_info=True)
                skipped += 1

        logger.info(
            f"Quote {source.quote_number} copied to {new_quote.quote_number} "
            f"({len(copies)} items, {skipped} attachments skipped)",
            extra={"quote_id": new_quote.id},
        )
        return new_quote

    # ── clusters ─────────────────────────────────────────────────────────────

    async def ensure_cluster(self, item_id: str, name: Optional[str] = None) -> ClusterRecord:
        """
        Return the item's default cluster, creating it at position 0 if absent.

        This is the only get-or-create path; the (item, position) uniqueness
        constraint keeps concurrent callers on one cluster.
        """
        item = await self._require_item(item_id)
        if not item.is_priced:
            raise CommandValidationError(
                f"Quote item {item_id} is a {item.item_type.value} and cannot carry costing",
                item_id=item_id,
            )
        cluster = await self.store.get_or_create_quote_item_cluster(
            item_id, name or DEFAULT_CLUSTER_NAME, DEFAULT_CLUSTER_POSITION
        )
        self.workspace.upsert_cluster(cluster)
        return cluster

    async def update_cluster(self, cluster_id: str, cmd: UpdateCluster) -> ClusterRecord:
        cluster = await self._require_cluster(cluster_id)
        fields: Dict[str, Any] = {}
        if cmd.name is not None and cmd.name != cluster.name:
            fields["name"] = cmd.name

        if cmd.markup is not None:
            incoming = cmd.markup.to_markup()
            if incoming.markup_type is not cluster.markup.markup_type:
                raise CommandValidationError(
                    f"Cluster markup is {cluster.markup.markup_type.value}; "
                    f"switch the markup type before setting a {incoming.markup_type.value} value",
                    cluster_id=cluster_id,
                )
            draft = MarkupDraft(cluster.markup)
            draft.edit(str(incoming.value))
            changed = draft.commit()
            if changed is not None:
                fields["markup"] = changed

        if not fields:
            return cluster
        updated = await self.store.update_quote_item_cluster(cluster_id, fields)
        self.workspace.upsert_cluster(updated)
        return updated

    async def switch_markup_type(self, cluster_id: str, markup_type: MarkupType) -> ClusterRecord:
        cluster = await self._require_cluster(cluster_id)
        markup = markup_for_type(cluster.markup, markup_type)
        if markup is cluster.markup:
            return cluster
        updated = await self.store.update_quote_item_cluster(cluster_id, {"markup": markup})
        self.workspace.upsert_cluster(updated)
        logger.info(f"Markup type switched to {markup_type.value}", extra={"cluster_id": cluster_id})
        return updated

    async def cluster_summary(self, cluster_id: str) -> ClusterSummary:
        return summarize(await self._require_cluster(cluster_id))

    # ── items ────────────────────────────────────────────────────────────────

    @timed_async
    async def create_manual_item(self, quote_id: str, cmd: CreateManualItem) -> QuoteItemRecord:
        await self._require_quote(quote_id)
        item = await self.store.create_quote_item(quote_id, {
            "description": cmd.description,
            "qty": cmd.qty,
            "unit_price": round_money(cmd.unit_price),
            "item_type": ItemType.PRICED,
        })
        self._remember(item)
        logger.info("Manual item created", extra={"quote_id": quote_id, "item_id": item.id})
        return item

    @timed_async
    async def create_text_item(self, quote_id: str, cmd: CreateTextItem) -> QuoteItemRecord:
        await self._require_quote(quote_id)
        item = await self.store.create_quote_item(quote_id, {
            "description": cmd.description,
            "qty": 0.0,
            "unit_price": 0.0,
            "item_type": ItemType(cmd.item_type),
            "text_align": cmd.text_align,
        })
        self._remember(item)
        return item

    @timed_async
    async def create_product_item(self, quote_id: str, cmd: CreateProductItem) -> ItemCommandResult:
        """
        Item (named after the product, price 0) → default cluster → exploded
        lines → primary image.  The item is deleted again if anything before
        the image step fails.
        """
        await self._require_quote(quote_id)
        product = await self.resolver.get_product(cmd.product_id)
        if product is None:
            raise NotFoundError(f"Product {cmd.product_id} not found", product_id=cmd.product_id)

        ctx = {"quote_id": quote_id, "product_id": cmd.product_id}
        notices: List[str] = []
        saga = Saga("create_product_item", **ctx)

        item = await self.store.create_quote_item(quote_id, {
            "description": product.name or product.internal_code,
            "qty": cmd.qty,
            "unit_price": 0.0,
            "item_type": ItemType.PRICED,
            "selected_options": normalize_options(cmd.selected_options),
        })
        saga.on_rollback("delete item", lambda: self.store.delete_quote_item(item.id))

        lines: List[LineRecord] = []
        try:
            cluster = await self.ensure_cluster(item.id)
            if cmd.explode:
                result = await self.factory.explode_product(
                    product.product_id,
                    cmd.qty,
                    cmd.selected_options,
                    include_labour=cmd.include_labour,
                    include_overhead=cmd.include_overhead,
                )
                if result.is_empty:
                    logger.warning(NO_COSTING_LINES_NOTICE, extra={**ctx, "item_id": item.id})
                    notices.append(NO_COSTING_LINES_NOTICE)
                lines = await self._write_lines(cluster.id, result.all_lines)
        except CostingError:
            await saga.compensate()
            raise
        except Exception as exc:
            logger.error("Product item creation failed", extra={**ctx, "item_id": item.id}, exc_info=True)
            await saga.compensate()
            raise PersistenceError(f"Could not create item for product {product.product_id}", **ctx) from exc

        if cmd.attach_image:
            try:
                await self.attachments.attach_primary_product_image(
                    self.catalog, quote_id, item.id, product.product_id
                )
            except Exception:
                logger.warning("Product image attach failed", extra={**ctx, "item_id": item.id}, exc_info=True)
                notices.append(IMAGE_ATTACH_FAILED_NOTICE)

        item = await self._require_item(item.id)
        self._remember(item)
        logger.info(
            f"Product item created with {len(lines)} cost lines",
            extra={**ctx, "item_id": item.id},
        )
        return ItemCommandResult(
            item=item,
            cluster=item.clusters[0] if item.clusters else cluster,
            lines=lines,
            notices=notices,
        )

    async def update_item(self, item_id: str, cmd: UpdateItem) -> QuoteItemRecord:
        item = await self._require_item(item_id)
        fields = cmd.model_dump(exclude_unset=True)
        for key in ("description", "qty", "unit_price", "text_align", "selected_options"):
            if key in fields and fields[key] is None:
                del fields[key]

        if not item.is_priced:
            for key in ("qty", "unit_price"):
                if fields.get(key):
                    raise CommandValidationError(
                        f"A {item.item_type.value} item has no {key}", item_id=item_id
                    )
                fields.pop(key, None)
        if "unit_price" in fields:
            fields["unit_price"] = round_money(fields["unit_price"])
        if "selected_options" in fields:
            fields["selected_options"] = normalize_options(fields["selected_options"])

        if not fields:
            return item
        updated = await self.store.update_quote_item(item_id, fields)
        self._remember(updated)
        return updated

    async def delete_item(self, item_id: str) -> None:
        item = await self._require_item(item_id)
        await self.store.delete_quote_item(item_id)
        self.workspace.remove_item(item_id)
        logger.info("Quote item deleted", extra={"quote_id": item.quote_id, "item_id": item_id})

    async def _copy_item_tree(self, source: QuoteItemRecord, quote_id: str, saga: Saga) -> QuoteItemRecord:
        duplicate = await self.store.create_quote_item(quote_id, _copied_fields(source))
        saga.on_rollback(f"delete item {duplicate.id}", lambda: self.store.delete_quote_item(duplicate.id))
        for cluster in sorted(source.clusters, key=lambda c: c.position):
            new_cluster = await self.store.create_quote_item_cluster(
                duplicate.id, cluster.name, cluster.position, cluster.markup
            )
            for line in cluster.lines:
                await self.store.create_quote_cluster_line(new_cluster.id, as_draft(line))
        return duplicate

    async def _copy_attachments(
        self, source: QuoteItemRecord, quote_id: str, item_id: str
    ) -> Tuple[int, int]:
        """Returns ``(copied, skipped)``; nothing here aborts the caller."""
        try:
            attachments = await self.attachments.list_item_attachments(source.id)
        except Exception:
            logger.warning("Item attachments unavailable", extra={"item_id": source.id}, exc_info=True)
            return 0, 0

        copied = skipped = 0
        for att in attachments:
            try:
                await self.attachments.duplicate(att, quote_id, item_id)
                copied += 1
            except Exception:
                logger.warning(
                    f"Attachment {att.id} not copied",
                    extra={"quote_id": quote_id, "item_id": item_id},
                    exc_info=True,
                )
                skipped += 1
        return copied, skipped

    @timed_async
    async def duplicate_item(self, item_id: str) -> DuplicationResult:
        """
        Deep copy an item with its clusters, lines and attachments under new
        ids.  The copy is appended at the end of the quote.
        """
        source = await self._require_item(item_id)
        saga = Saga("duplicate_item", quote_id=source.quote_id, item_id=item_id)
        try:
            duplicate = await self._copy_item_tree(source, source.quote_id, saga)
        except Exception as exc:
            logger.error("Item duplication failed, removing partial copy", extra=saga.context, exc_info=True)
            await saga.compensate()
            raise DuplicationError(f"Could not duplicate quote item {item_id}", item_id=item_id) from exc

        copied, skipped = await self._copy_attachments(source, source.quote_id, duplicate.id)
        await self.refresh(source.quote_id)
        result = DuplicationResult(
            item=self.workspace.find_item(duplicate.id) or await self._require_item(duplicate.id),
            attachments_copied=copied,
            attachments_skipped=skipped,
        )
        logger.info(
            f"Quote item duplicated ({copied} attachments copied, {skipped} skipped)",
            extra={"quote_id": source.quote_id, "item_id": duplicate.id},
        )
        return result

    @timed_async
    async def reorder_items(self, quote_id: str, item_ids: List[str]) -> List[QuoteItemRecord]:
        await self._ensure_loaded(quote_id)
        previous = self.workspace.order()
        self.workspace.apply_order(item_ids)
        try:
            await self.store.reorder_quote_items(quote_id, list(item_ids))
        except Exception as exc:
            self.workspace.apply_order(previous)
            logger.error("Reorder failed, local order restored", extra={"quote_id": quote_id}, exc_info=True)
            raise ReorderError("Could not save the new item order", quote_id=quote_id) from exc
        return self.workspace.items

    async def move_item(self, item_id: str, direction: str) -> List[QuoteItemRecord]:
        item = await self._require_item(item_id)
        await self._ensure_loaded(item.quote_id)
        current = self.workspace.order()
        new_order = move_in_order(current, item_id, -1 if direction == "up" else 1)
        if new_order == current:
            return self.workspace.items
        return await self.reorder_items(item.quote_id, new_order)

    async def set_item_price(self, item_id: str, price: float) -> QuoteItemRecord:
        item = await self.propagator.update_item_price(item_id, price)
        self._remember(item)
        return item

    async def propagate_cluster_total(self, cluster_id: str) -> Tuple[QuoteItemRecord, ClusterSummary]:
        item, summary = await self.propagator.propagate_cluster_total(cluster_id)
        self._remember(item)
        return item, summary

    # ── lines ────────────────────────────────────────────────────────────────

    async def _write_lines(self, cluster_id: str, drafts: List[LineDraft]) -> List[LineRecord]:
        """Persist drafts in order; a failed write removes the ones already saved."""
        saga = Saga("write_lines", cluster_id=cluster_id)
        written: List[LineRecord] = []
        try:
            for draft in drafts:
                line = await self.store.create_quote_cluster_line(cluster_id, draft)
                saga.on_rollback(
                    f"delete line {line.id}",
                    lambda line_id=line.id: self.store.delete_quote_cluster_line(line_id),
                )
                written.append(line)
        except Exception:
            await saga.compensate()
            raise
        for line in written:
            self.workspace.add_line(line)
        return written

    async def _add_line_optimistic(self, cluster_id: str, draft: LineDraft) -> LineRecord:
        pending = LineRecord(**vars(draft), id=f"pending-{uuid.uuid4().hex}", cluster_id=cluster_id)
        self.workspace.add_line(pending)
        try:
            saved = await self.store.create_quote_cluster_line(cluster_id, draft)
        except Exception as exc:
            self.workspace.remove_line(pending.id)
            logger.error("Cost line write failed", extra={"cluster_id": cluster_id}, exc_info=True)
            raise PersistenceError("Could not save the cost line", cluster_id=cluster_id) from exc
        self.workspace.replace_line(pending.id, saved)
        return saved

    async def _component_draft(self, entry: ComponentEntry) -> LineDraft:
        components = await self.resolver.resolve_component_descriptions([entry.component_id])
        component = components.get(entry.component_id)
        if component is None:
            raise NotFoundError(f"Component {entry.component_id} not found", component_id=entry.component_id)

        selection = await self.suppliers.default_selection(entry.component_id)
        if entry.supplier_component_id is not None:
            offer = next(
                (o for o in selection.offers if o.supplier_component_id == entry.supplier_component_id),
                None,
            )
            if offer is None:
                raise CommandValidationError(
                    f"Supplier offer {entry.supplier_component_id} does not supply component {entry.component_id}",
                    component_id=entry.component_id,
                )
            selection.choose(offer)
        if entry.override_unit_cost is not None:
            selection.set_override(True)
            selection.set_unit_cost(entry.override_unit_cost)
        if entry.require_supplier and selection.selected is None:
            raise CommandValidationError(
                f"Component {entry.component_id} has no priced supplier offer",
                component_id=entry.component_id,
            )
        return catalog_component_line(component, selection, entry.qty)

    @timed_async
    async def add_line(self, cluster_id: str, entry: LineEntry) -> ItemCommandResult:
        """Add lines to a cluster from a manual / component / product / collection entry."""
        cluster = await self._require_cluster(cluster_id)
        item = await self._require_item(cluster.item_id)
        await self._ensure_loaded(item.quote_id)
        notices: List[str] = []

        if isinstance(entry, ManualEntry):
            draft = manual_line(entry.description, entry.qty, entry.unit_cost)
            draft.include_in_markup = entry.include_in_markup
            lines = [await self._add_line_optimistic(cluster_id, draft)]
        elif isinstance(entry, ComponentEntry):
            lines = [await self._add_line_optimistic(cluster_id, await self._component_draft(entry))]
        elif isinstance(entry, ProductEntry):
            product = await self.resolver.get_product(entry.product_id)
            if product is None:
                raise NotFoundError(f"Product {entry.product_id} not found", product_id=entry.product_id)
            if entry.explode:
                result = await self.factory.explode_product(
                    product.product_id,
                    entry.qty,
                    entry.selected_options,
                    include_labour=entry.include_labour,
                    include_overhead=entry.include_overhead,
                )
                if result.is_empty:
                    notices.append(NO_COSTING_LINES_NOTICE)
                drafts = result.all_lines
            else:
                drafts = [product_reference_line(product, entry.qty)]
            lines = await self._persist_drafts(cluster_id, drafts)
        elif isinstance(entry, CollectionEntry):
            drafts = await self.factory.expand_collection(entry.collection_id, entry.multiplier)
            if not drafts:
                notices.append(EMPTY_COLLECTION_NOTICE)
            lines = await self._persist_drafts(cluster_id, drafts)
        else:
            raise CommandValidationError(f"Unsupported line entry {type(entry).__name__}", cluster_id=cluster_id)

        logger.info(f"{len(lines)} cost line(s) added", extra={"cluster_id": cluster_id, "item_id": item.id})
        return ItemCommandResult(
            cluster=self.workspace.find_cluster(cluster_id) or await self._require_cluster(cluster_id),
            lines=lines,
            notices=notices,
        )

    async def _persist_drafts(self, cluster_id: str, drafts: List[LineDraft]) -> List[LineRecord]:
        try:
            return await self._write_lines(cluster_id, drafts)
        except Exception as exc:
            logger.error("Cost line batch write failed", extra={"cluster_id": cluster_id}, exc_info=True)
            raise PersistenceError("Could not save the cost lines", cluster_id=cluster_id) from exc

    async def update_line(self, line_id: str, cmd: UpdateLine) -> LineRecord:
        await self._require_line(line_id)
        fields = cmd.model_dump(exclude_unset=True)
        for key in ("description", "qty", "include_in_markup", "sort_order"):
            if key in fields and fields[key] is None:
                del fields[key]
        if fields.get("unit_cost") is not None:
            fields["unit_cost"] = round_money(fields["unit_cost"])
        if not fields:
            return await self._require_line(line_id)
        updated = await self.store.update_quote_cluster_line(line_id, fields)
        self.workspace.replace_line(line_id, updated)
        return updated

    async def delete_line(self, line_id: str) -> None:
        line = await self._require_line(line_id)
        await self.store.delete_quote_cluster_line(line_id)
        self.workspace.remove_line(line_id)
        logger.info("Cost line deleted", extra={"cluster_id": line.cluster_id})
