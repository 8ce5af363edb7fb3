"""
Supplier Price Resolver: candidate supplier offers for a catalog component
and the default (lowest price) selection.

``PriceSelection`` holds the cost field for one component entry: once an
offer is chosen the cost is locked to that offer's price unless the operator
sets the override toggle; choosing another offer clears the override.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from app.models.costing_types import SupplierOffer, round_money
from app.services.gateways import CatalogGateway

logger = logging.getLogger("quotecost-suppliers")


def _has_price(offer: SupplierOffer) -> bool:
    return isinstance(offer.price, (int, float)) and not isinstance(offer.price, bool)


def lowest_price(offers: Sequence[SupplierOffer]) -> Optional[float]:
    prices = [float(o.price) for o in offers if _has_price(o)]
    return min(prices) if prices else None


def select_default(offers: Sequence[SupplierOffer]) -> Optional[SupplierOffer]:
    """
    Lowest-priced offer, or None when no offer carries a price.

    Left-to-right reduction that only replaces on a strictly lower price, so
    the first of several tied offers wins.
    """
    chosen: Optional[SupplierOffer] = None
    for offer in offers:
        if not _has_price(offer):
            continue
        if chosen is None or float(offer.price) < float(chosen.price):
            chosen = offer
    return chosen


def is_lowest(offer: SupplierOffer, offers: Sequence[SupplierOffer]) -> bool:
    """True for every offer priced at the minimum (ties are all marked)."""
    minimum = lowest_price(offers)
    if minimum is None or not _has_price(offer):
        return False
    return float(offer.price) == minimum


@dataclass
class PriceSelection:
    """Cost field state for a component being added to a cluster."""
    offers: List[SupplierOffer]
    selected: Optional[SupplierOffer] = None
    unit_cost: float = 0.0
    override: bool = False

    @classmethod
    def with_default(cls, offers: Sequence[SupplierOffer]) -> "PriceSelection":
        selection = cls(offers=list(offers))
        default = select_default(selection.offers)
        if default is not None:
            selection.choose(default)
        return selection

    def choose(self, offer: SupplierOffer) -> None:
        self.selected = offer
        self.unit_cost = float(offer.price or 0.0)
        self.override = False

    def set_override(self, enabled: bool) -> None:
        self.override = enabled
        if not enabled and self.selected is not None:
            self.unit_cost = float(self.selected.price or 0.0)

    def set_unit_cost(self, value: float) -> None:
        """Manual cost entry; ignored while locked to a chosen offer."""
        if self.selected is not None and not self.override:
            return
        self.unit_cost = float(value or 0.0)

    @property
    def effective_unit_cost(self) -> float:
        return round_money(self.unit_cost)


class SupplierPriceResolver:

    def __init__(self, catalog: CatalogGateway) -> None:
        self.catalog = catalog

    async def list_offers(self, component_id: int) -> List[SupplierOffer]:
        try:
            return list(await self.catalog.fetch_supplier_components_for_component(component_id))
        except Exception:
            logger.warning(
                "Supplier offers lookup failed",
                extra={"component_id": component_id},
                exc_info=True,
            )
            return []

    async def default_selection(self, component_id: int) -> PriceSelection:
        return PriceSelection.with_default(await self.list_offers(component_id))
