"""
Catalog Resolver: turns a product id (plus its selected configuration
options) into an ordered bill of components and an ordered bill of labour.

The effective BOM (option overlays + linked sub-products, flattened) is
preferred; when it comes back empty the product's direct BOM is used.  All
reads are side-effect free.
"""
import logging
from typing import Dict, Iterable, List, Optional

from app.models.costing_types import (
    BomRow,
    CollectionRow,
    ComponentRecord,
    LaborRow,
    OverheadRow,
    ProductRecord,
    SelectedOptions,
)
from app.services.gateways import CatalogGateway

logger = logging.getLogger("quotecost-catalog")


def normalize_options(selected_options: Optional[Dict[str, object]]) -> SelectedOptions:
    """Drop blank keys / values; only ``{group_code: value_code}`` strings survive."""
    if not selected_options:
        return {}
    return {
        str(group): str(value)
        for group, value in selected_options.items()
        if isinstance(group, str) and group and isinstance(value, str) and value
    }


class CatalogResolver:

    def __init__(self, catalog: CatalogGateway) -> None:
        self.catalog = catalog

    async def get_product(self, product_id: int) -> Optional[ProductRecord]:
        return await self.catalog.fetch_product(product_id)

    async def resolve_effective_bom(
        self, product_id: int, selected_options: Optional[SelectedOptions] = None
    ) -> List[BomRow]:
        """
        Flattened BOM for a configured product.

        A failing effective view is logged and treated as empty so the direct
        BOM is still used; a failing direct BOM propagates.
        """
        options = normalize_options(selected_options)
        try:
            rows = await self.catalog.fetch_effective_bom(product_id, options)
        except Exception:
            logger.warning(
                "Effective BOM unavailable, falling back to direct BOM",
                extra={"product_id": product_id},
                exc_info=True,
            )
            rows = []

        if rows:
            return list(rows)
        return await self.resolve_direct_bom(product_id, options)

    async def resolve_direct_bom(
        self, product_id: int, selected_options: Optional[SelectedOptions] = None
    ) -> List[BomRow]:
        rows = await self.catalog.fetch_product_components(product_id, normalize_options(selected_options))
        return list(rows)

    async def resolve_labor(self, product_id: int) -> List[LaborRow]:
        rows = await self.catalog.fetch_product_labor(product_id)
        return list(rows)

    async def resolve_component_descriptions(self, ids: Iterable[int]) -> Dict[int, ComponentRecord]:
        """Map component id -> record.  Lookup failure yields an empty map."""
        unique_ids = sorted({int(i) for i in ids if i is not None})
        if not unique_ids:
            return {}
        try:
            components = await self.catalog.fetch_components_by_ids(unique_ids)
        except Exception:
            logger.warning("Component description lookup failed", exc_info=True)
            return {}
        return {c.component_id: c for c in components}

    async def resolve_collection(self, collection_id: int) -> List[CollectionRow]:
        try:
            return list(await self.catalog.fetch_collection_items(collection_id))
        except Exception:
            logger.warning(
                "Collection lookup failed",
                extra={"collection_id": collection_id},
                exc_info=True,
            )
            return []

    async def resolve_overheads(self, product_id: int) -> List[OverheadRow]:
        return list(await self.catalog.fetch_product_overheads(product_id))
