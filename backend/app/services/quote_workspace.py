"""
In-memory view of the quote being edited.

Some flows update this view before their write resolves (single line add,
reorder) and roll it back on failure; others (duplication) reload it from the
store afterwards.  The view is per editing session and is never shared.
"""
from typing import Dict, List, Optional, Sequence

from app.models.costing_types import ClusterRecord, LineRecord, QuoteItemRecord
from app.services.errors import CommandValidationError, NotFoundError


def move_in_order(order: Sequence[str], item_id: str, offset: int) -> List[str]:
    """Return ``order`` with ``item_id`` shifted by ``offset``, clamped to the ends."""
    ids = list(order)
    if item_id not in ids:
        raise NotFoundError(f"Quote item {item_id} not in quote", item_id=item_id)
    index = ids.index(item_id)
    target = max(0, min(len(ids) - 1, index + offset))
    ids.insert(target, ids.pop(index))
    return ids


class QuoteWorkspace:

    def __init__(self, quote_id: Optional[str] = None, items: Optional[List[QuoteItemRecord]] = None) -> None:
        self.quote_id = quote_id
        self.items: List[QuoteItemRecord] = list(items or [])

    # ── loading ──────────────────────────────────────────────────────────────

    def is_loaded(self, quote_id: str) -> bool:
        return self.quote_id == quote_id

    def load(self, quote_id: str, items: List[QuoteItemRecord]) -> None:
        self.quote_id = quote_id
        self.items = sorted(items, key=lambda i: i.position)

    # ── items ────────────────────────────────────────────────────────────────

    def order(self) -> List[str]:
        return [item.id for item in self.items]

    def apply_order(self, item_ids: Sequence[str]) -> None:
        by_id: Dict[str, QuoteItemRecord] = {item.id: item for item in self.items}
        if sorted(by_id) != sorted(item_ids):
            raise CommandValidationError(
                "New order must contain every item of the quote exactly once",
                quote_id=self.quote_id,
            )
        self.items = [by_id[i] for i in item_ids]
        for position, item in enumerate(self.items):
            item.position = position

    def find_item(self, item_id: str) -> Optional[QuoteItemRecord]:
        return next((item for item in self.items if item.id == item_id), None)

    def upsert_item(self, item: QuoteItemRecord) -> None:
        if self.quote_id is not None and item.quote_id != self.quote_id:
            return
        for index, existing in enumerate(self.items):
            if existing.id == item.id:
                self.items[index] = item
                return
        self.items.append(item)

    def remove_item(self, item_id: str) -> None:
        self.items = [item for item in self.items if item.id != item_id]

    # ── clusters / lines ─────────────────────────────────────────────────────

    def find_cluster(self, cluster_id: str) -> Optional[ClusterRecord]:
        for item in self.items:
            for cluster in item.clusters:
                if cluster.id == cluster_id:
                    return cluster
        return None

    def upsert_cluster(self, cluster: ClusterRecord) -> None:
        item = self.find_item(cluster.item_id)
        if item is None:
            return
        for index, existing in enumerate(item.clusters):
            if existing.id == cluster.id:
                cluster.lines = cluster.lines or existing.lines
                item.clusters[index] = cluster
                return
        item.clusters.append(cluster)

    def add_line(self, line: LineRecord) -> None:
        cluster = self.find_cluster(line.cluster_id)
        if cluster is not None:
            cluster.lines.append(line)

    def replace_line(self, line_id: str, line: LineRecord) -> None:
        cluster = self.find_cluster(line.cluster_id)
        if cluster is None:
            return
        for index, existing in enumerate(cluster.lines):
            if existing.id == line_id:
                cluster.lines[index] = line
                return
        cluster.lines.append(line)

    def remove_line(self, line_id: str) -> None:
        for item in self.items:
            for cluster in item.clusters:
                cluster.lines = [line for line in cluster.lines if line.id != line_id]
