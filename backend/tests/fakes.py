"""
In-memory collaborators for the costing services.

Each fake returns deep copies so callers never share object identity with
the stored state (the same contract a database-backed gateway has).  Any
method can be made to fail by setting ``fail_after[method_name] = n``: the
first ``n`` calls succeed and every later one raises ``InjectedFailure``.
"""
import asyncio
import copy
import uuid
from collections import Counter
from dataclasses import fields
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, PendingRollbackError

from app.models.costing_types import (
    AttachmentRecord,
    BomRow,
    ClusterRecord,
    CollectionRow,
    ComponentRecord,
    LaborRow,
    LineDraft,
    LineRecord,
    Markup,
    OverheadRow,
    PercentageMarkup,
    ProductImage,
    ProductRecord,
    QuoteItemRecord,
    QuoteRecord,
    SelectedOptions,
    SupplierOffer,
)
from app.services.errors import CommandValidationError, NotFoundError
from app.services.gateways import AttachmentGateway, CatalogGateway, QuoteStore


def run(coro):
    return asyncio.run(coro)


def _new_id() -> str:
    return str(uuid.uuid4())


class InjectedFailure(RuntimeError):
    pass


class _FailureInjection:

    def __init__(self) -> None:
        self.calls: Counter = Counter()
        self.fail_after: Dict[str, int] = {}

    def _tick(self, name: str) -> None:
        self.calls[name] += 1
        limit = self.fail_after.get(name)
        if limit is not None and self.calls[name] > limit:
            raise InjectedFailure(f"injected failure in {name}")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class FakeCatalog(_FailureInjection, CatalogGateway):

    def __init__(self) -> None:
        super().__init__()
        self.products: Dict[int, ProductRecord] = {}
        self.effective_bom: Dict[int, List[BomRow]] = {}
        self.direct_bom: Dict[int, List[BomRow]] = {}
        self.labor: Dict[int, List[LaborRow]] = {}
        self.components: Dict[int, ComponentRecord] = {}
        self.offers: Dict[int, List[SupplierOffer]] = {}
        self.images: Dict[int, ProductImage] = {}
        self.collections: Dict[int, List[CollectionRow]] = {}
        self.overheads: Dict[int, List[OverheadRow]] = {}

    async def fetch_product(self, product_id: int) -> Optional[ProductRecord]:
        self._tick("fetch_product")
        return copy.deepcopy(self.products.get(product_id))

    async def fetch_effective_bom(self, product_id: int, selected_options: SelectedOptions) -> List[BomRow]:
        self._tick("fetch_effective_bom")
        return copy.deepcopy(self.effective_bom.get(product_id, []))

    async def fetch_product_components(self, product_id: int, selected_options: SelectedOptions) -> List[BomRow]:
        self._tick("fetch_product_components")
        return copy.deepcopy(self.direct_bom.get(product_id, []))

    async def fetch_product_labor(self, product_id: int) -> List[LaborRow]:
        self._tick("fetch_product_labor")
        return copy.deepcopy(self.labor.get(product_id, []))

    async def fetch_components_by_ids(self, ids: Iterable[int]) -> List[ComponentRecord]:
        self._tick("fetch_components_by_ids")
        return [copy.deepcopy(self.components[i]) for i in ids if i in self.components]

    async def fetch_supplier_components_for_component(self, component_id: int) -> List[SupplierOffer]:
        self._tick("fetch_supplier_components_for_component")
        return copy.deepcopy(self.offers.get(component_id, []))

    async def fetch_primary_product_image(self, product_id: int) -> Optional[ProductImage]:
        self._tick("fetch_primary_product_image")
        return copy.deepcopy(self.images.get(product_id))

    async def fetch_collection_items(self, collection_id: int) -> List[CollectionRow]:
        self._tick("fetch_collection_items")
        if collection_id not in self.collections:
            raise NotFoundError(f"Collection {collection_id} not found", collection_id=collection_id)
        return copy.deepcopy(self.collections[collection_id])

    async def fetch_product_overheads(self, product_id: int) -> List[OverheadRow]:
        self._tick("fetch_product_overheads")
        return copy.deepcopy(self.overheads.get(product_id, []))


# ---------------------------------------------------------------------------
# Quote store
# ---------------------------------------------------------------------------

class FakeQuoteStore(_FailureInjection, QuoteStore):

    def __init__(self) -> None:
        super().__init__()
        self.quotes: Dict[str, QuoteRecord] = {}
        self.items: Dict[str, QuoteItemRecord] = {}
        self.clusters: Dict[str, ClusterRecord] = {}
        self.lines: Dict[str, LineRecord] = {}

    # assembly

    def _cluster_tree(self, cluster: ClusterRecord) -> ClusterRecord:
        tree = copy.deepcopy(cluster)
        tree.lines = sorted(
            (copy.deepcopy(line) for line in self.lines.values() if line.cluster_id == cluster.id),
            key=lambda line: line.sort_order,
        )
        return tree

    def _item_tree(self, item: QuoteItemRecord) -> QuoteItemRecord:
        tree = copy.deepcopy(item)
        tree.clusters = sorted(
            (self._cluster_tree(c) for c in self.clusters.values() if c.item_id == item.id),
            key=lambda c: c.position,
        )
        return tree

    # quotes

    async def create_quote(self, quote_number: str, customer_name: Optional[str], status: str) -> QuoteRecord:
        self._tick("create_quote")
        if any(q.quote_number == quote_number for q in self.quotes.values()):
            raise CommandValidationError(f"Quote number {quote_number} already exists")
        quote = QuoteRecord(id=_new_id(), quote_number=quote_number, customer_name=customer_name, status=status)
        self.quotes[quote.id] = quote
        return copy.deepcopy(quote)

    async def get_quote(self, quote_id: str) -> Optional[QuoteRecord]:
        self._tick("get_quote")
        return copy.deepcopy(self.quotes.get(quote_id))

    async def delete_quote(self, quote_id: str) -> None:
        self._tick("delete_quote")
        for item in [i for i in self.items.values() if i.quote_id == quote_id]:
            self._drop_item(item.id)
        self.quotes.pop(quote_id, None)

    # items

    async def list_items(self, quote_id: str) -> List[QuoteItemRecord]:
        self._tick("list_items")
        items = sorted((i for i in self.items.values() if i.quote_id == quote_id), key=lambda i: i.position)
        return [self._item_tree(i) for i in items]

    async def get_item(self, item_id: str) -> Optional[QuoteItemRecord]:
        self._tick("get_item")
        item = self.items.get(item_id)
        return self._item_tree(item) if item else None

    async def create_quote_item(self, quote_id: str, fields: Dict[str, Any]) -> QuoteItemRecord:
        self._tick("create_quote_item")
        positions = [i.position for i in self.items.values() if i.quote_id == quote_id]
        item = QuoteItemRecord(
            id=_new_id(),
            quote_id=quote_id,
            position=max(positions) + 1 if positions else 0,
            **copy.deepcopy(fields),
        )
        self.items[item.id] = item
        return self._item_tree(item)

    async def update_quote_item(self, item_id: str, fields: Dict[str, Any]) -> QuoteItemRecord:
        self._tick("update_quote_item")
        item = self.items.get(item_id)
        if item is None:
            raise NotFoundError(f"Quote item {item_id} not found")
        for key, value in fields.items():
            setattr(item, key, copy.deepcopy(value))
        return self._item_tree(item)

    def _drop_item(self, item_id: str) -> None:
        for cluster in [c for c in self.clusters.values() if c.item_id == item_id]:
            for line_id in [l.id for l in self.lines.values() if l.cluster_id == cluster.id]:
                del self.lines[line_id]
            del self.clusters[cluster.id]
        self.items.pop(item_id, None)

    async def delete_quote_item(self, item_id: str) -> None:
        self._tick("delete_quote_item")
        self._drop_item(item_id)

    async def reorder_quote_items(self, quote_id: str, item_ids: List[str]) -> None:
        self._tick("reorder_quote_items")
        current = {i.id for i in self.items.values() if i.quote_id == quote_id}
        if current != set(item_ids) or len(item_ids) != len(current):
            raise CommandValidationError("Item ids do not match the quote")
        for position, item_id in enumerate(item_ids):
            self.items[item_id].position = position

    def positions(self, quote_id: str) -> List[str]:
        """Persisted item order, for assertions."""
        items = sorted((i for i in self.items.values() if i.quote_id == quote_id), key=lambda i: i.position)
        return [i.id for i in items]

    # clusters

    async def get_cluster(self, cluster_id: str) -> Optional[ClusterRecord]:
        self._tick("get_cluster")
        cluster = self.clusters.get(cluster_id)
        return self._cluster_tree(cluster) if cluster else None

    async def get_or_create_quote_item_cluster(self, item_id: str, name: str, position: int) -> ClusterRecord:
        self._tick("get_or_create_quote_item_cluster")
        for cluster in self.clusters.values():
            if cluster.item_id == item_id and cluster.position == position:
                return self._cluster_tree(cluster)
        cluster = ClusterRecord(id=_new_id(), item_id=item_id, name=name, position=position, markup=PercentageMarkup(0.0))
        self.clusters[cluster.id] = cluster
        return self._cluster_tree(cluster)

    async def create_quote_item_cluster(self, item_id: str, name: str, position: int, markup: Markup) -> ClusterRecord:
        self._tick("create_quote_item_cluster")
        if any(c.item_id == item_id and c.position == position for c in self.clusters.values()):
            raise CommandValidationError("Cluster position already taken")
        cluster = ClusterRecord(id=_new_id(), item_id=item_id, name=name, position=position, markup=markup)
        self.clusters[cluster.id] = cluster
        return self._cluster_tree(cluster)

    async def update_quote_item_cluster(self, cluster_id: str, fields: Dict[str, Any]) -> ClusterRecord:
        self._tick("update_quote_item_cluster")
        cluster = self.clusters[cluster_id]
        for key, value in fields.items():
            setattr(cluster, key, value)
        return self._cluster_tree(cluster)

    # lines

    async def get_line(self, line_id: str) -> Optional[LineRecord]:
        self._tick("get_line")
        return copy.deepcopy(self.lines.get(line_id))

    async def create_quote_cluster_line(self, cluster_id: str, line: LineDraft) -> LineRecord:
        self._tick("create_quote_cluster_line")
        if cluster_id not in self.clusters:
            raise NotFoundError(f"Cluster {cluster_id} not found")
        values = {f.name: copy.deepcopy(getattr(line, f.name)) for f in fields(LineDraft)}
        record = LineRecord(**values, id=_new_id(), cluster_id=cluster_id)
        self.lines[record.id] = record
        return copy.deepcopy(record)

    async def update_quote_cluster_line(self, line_id: str, fields: Dict[str, Any]) -> LineRecord:
        self._tick("update_quote_cluster_line")
        line = self.lines[line_id]
        for key, value in fields.items():
            setattr(line, key, value)
        return copy.deepcopy(line)

    async def delete_quote_cluster_line(self, line_id: str) -> None:
        self._tick("delete_quote_cluster_line")
        self.lines.pop(line_id, None)

    def lines_of_item(self, item_id: str) -> List[LineRecord]:
        cluster_ids = {c.id for c in self.clusters.values() if c.item_id == item_id}
        return [l for l in self.lines.values() if l.cluster_id in cluster_ids]


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------

class FakeAttachmentGateway(_FailureInjection, AttachmentGateway):

    def __init__(self) -> None:
        super().__init__()
        self.records: List[AttachmentRecord] = []

    async def create_quote_attachment_from_url(
        self,
        quote_id: str,
        item_id: Optional[str],
        file_url: str,
        original_name: Optional[str] = None,
        mime_type: Optional[str] = None,
        file_size: Optional[int] = None,
        display_in_quote: bool = True,
        display_order: int = 0,
    ) -> AttachmentRecord:
        self._tick("create_quote_attachment_from_url")
        record = AttachmentRecord(
            id=_new_id(),
            quote_id=quote_id,
            item_id=item_id,
            file_url=file_url,
            original_name=original_name,
            mime_type=mime_type,
            file_size=file_size,
            display_in_quote=display_in_quote,
            display_order=display_order,
        )
        self.records.append(record)
        return copy.deepcopy(record)

    async def fetch_quote_item_attachments(self, item_id: str) -> List[AttachmentRecord]:
        self._tick("fetch_quote_item_attachments")
        return [copy.deepcopy(a) for a in self.records if a.item_id == item_id]

    async def fetch_quote_attachments(self, quote_id: str) -> List[AttachmentRecord]:
        self._tick("fetch_quote_attachments")
        return [copy.deepcopy(a) for a in self.records if a.quote_id == quote_id and a.item_id is None]


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class FakeTransactionSession:
    """
    Stands in for an ``AsyncSession`` on PostgreSQL.

    A row matching ``reject`` fails its INSERT.  If that happens outside a
    SAVEPOINT the transaction is aborted and every later statement raises
    ``PendingRollbackError``; inside one only the savepoint is lost.
    """

    def __init__(self, reject=lambda row: False) -> None:
        self.reject = reject
        self.rows: List[Any] = []
        self.statements: List[Any] = []
        self.aborted = False
        self._pending: List[Any] = []
        self._savepoints = 0

    def check(self) -> None:
        if self.aborted:
            raise PendingRollbackError("This Session's transaction has been rolled back")

    def add(self, row: Any) -> None:
        self.check()
        self._pending.append(row)

    async def flush(self) -> None:
        self.check()
        pending, self._pending = self._pending, []
        for row in pending:
            if self.reject(row):
                if not self._savepoints:
                    self.aborted = True
                raise IntegrityError("INSERT", {}, Exception("null value violates not-null constraint"))
            if getattr(row, "id", None) is None:
                row.id = _new_id()
            self.rows.append(row)

    async def execute(self, statement: Any) -> None:
        self.check()
        self.statements.append(statement)

    def begin_nested(self) -> "_FakeSavepoint":
        return _FakeSavepoint(self)


class _FakeSavepoint:

    def __init__(self, session: FakeTransactionSession) -> None:
        self.session = session

    async def __aenter__(self) -> "_FakeSavepoint":
        self.session.check()
        self.session._savepoints += 1
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.session._savepoints -= 1
        if exc_type is not None:
            self.session._pending.clear()
        return False


class SessionBoundQuoteStore(FakeQuoteStore):
    """FakeQuoteStore that shares a transaction: unusable once it aborts."""

    def __init__(self, session: FakeTransactionSession) -> None:
        super().__init__()
        self.session = session

    def _tick(self, name: str) -> None:
        self.session.check()
        super()._tick(name)
