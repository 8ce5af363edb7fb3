"""
Price Propagator: writes a cluster total into its item's sell price.

Runs only on an explicit operator command.  ``unit_price`` is not a derived
field: later cost changes leave it untouched until the operator propagates
again.
"""
import logging

from app.models.costing_types import QuoteItemRecord, round_money
from app.services.cluster_engine import ClusterSummary, summarize
from app.services.errors import CommandValidationError, NotFoundError
from app.services.gateways import QuoteStore

logger = logging.getLogger("quotecost-pricing")


class PricePropagator:

    def __init__(self, store: QuoteStore) -> None:
        self.store = store

    async def update_item_price(self, item_id: str, price: float) -> QuoteItemRecord:
        item = await self.store.get_item(item_id)
        if item is None:
            raise NotFoundError(f"Quote item {item_id} not found", item_id=item_id)
        if not item.is_priced:
            raise CommandValidationError(
                f"Quote item {item_id} is a {item.item_type.value} and carries no price",
                item_id=item_id,
            )
        unit_price = round_money(price)
        updated = await self.store.update_quote_item(item_id, {"unit_price": unit_price})
        logger.info("Item price updated to %.2f", unit_price, extra={"item_id": item_id})
        return updated

    async def propagate_cluster_total(self, cluster_id: str) -> tuple[QuoteItemRecord, ClusterSummary]:
        cluster = await self.store.get_cluster(cluster_id)
        if cluster is None:
            raise NotFoundError(f"Cluster {cluster_id} not found", cluster_id=cluster_id)
        summary = summarize(cluster)
        item = await self.update_item_price(cluster.item_id, summary.total)
        return item, summary
