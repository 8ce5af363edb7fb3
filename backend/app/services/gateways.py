"""
Collaborator contracts consumed by the costing core.

The catalog, quote store and attachment store are record-level and free of
business rules; every rule (pay types, markup, snapshotting, duplication
policy) lives in the services that call them.  ``sql_gateways`` provides the
SQLAlchemy implementations; tests substitute in-memory ones.
"""
import abc
from typing import Any, Dict, Iterable, List, Optional

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
    ProductImage,
    ProductRecord,
    QuoteItemRecord,
    QuoteRecord,
    SelectedOptions,
    SupplierOffer,
)


class CatalogGateway(abc.ABC):
    """Read-only access to products, components, suppliers and bundles."""

    @abc.abstractmethod
    async def fetch_product(self, product_id: int) -> Optional[ProductRecord]: ...

    @abc.abstractmethod
    async def fetch_effective_bom(
        self, product_id: int, selected_options: SelectedOptions
    ) -> List[BomRow]:
        """BOM flattened across option overlays and linked sub-products."""

    @abc.abstractmethod
    async def fetch_product_components(
        self, product_id: int, selected_options: SelectedOptions
    ) -> List[BomRow]:
        """The product's directly assigned BOM rows."""

    @abc.abstractmethod
    async def fetch_product_labor(self, product_id: int) -> List[LaborRow]: ...

    @abc.abstractmethod
    async def fetch_components_by_ids(self, ids: Iterable[int]) -> List[ComponentRecord]: ...

    @abc.abstractmethod
    async def fetch_supplier_components_for_component(self, component_id: int) -> List[SupplierOffer]: ...

    @abc.abstractmethod
    async def fetch_primary_product_image(self, product_id: int) -> Optional[ProductImage]: ...

    @abc.abstractmethod
    async def fetch_collection_items(self, collection_id: int) -> List[CollectionRow]: ...

    @abc.abstractmethod
    async def fetch_product_overheads(self, product_id: int) -> List[OverheadRow]: ...


class QuoteStore(abc.ABC):
    """Record-level writes and reads for quotes, items, clusters and lines."""

    # quotes
    @abc.abstractmethod
    async def create_quote(self, quote_number: str, customer_name: Optional[str], status: str) -> QuoteRecord: ...

    @abc.abstractmethod
    async def get_quote(self, quote_id: str) -> Optional[QuoteRecord]: ...

    @abc.abstractmethod
    async def delete_quote(self, quote_id: str) -> None:
        """Hard delete; items, clusters, lines and attachments cascade."""

    # items
    @abc.abstractmethod
    async def list_items(self, quote_id: str) -> List[QuoteItemRecord]:
        """Items in position order, each with clusters and lines loaded."""

    @abc.abstractmethod
    async def get_item(self, item_id: str) -> Optional[QuoteItemRecord]:
        """A single item with clusters and lines loaded."""

    @abc.abstractmethod
    async def create_quote_item(self, quote_id: str, fields: Dict[str, Any]) -> QuoteItemRecord:
        """Insert an item at the end of the quote (next position)."""

    @abc.abstractmethod
    async def update_quote_item(self, item_id: str, fields: Dict[str, Any]) -> QuoteItemRecord: ...

    @abc.abstractmethod
    async def delete_quote_item(self, item_id: str) -> None:
        """Hard delete; clusters and lines cascade."""

    @abc.abstractmethod
    async def reorder_quote_items(self, quote_id: str, item_ids: List[str]) -> None: ...

    # clusters
    @abc.abstractmethod
    async def get_cluster(self, cluster_id: str) -> Optional[ClusterRecord]: ...

    @abc.abstractmethod
    async def get_or_create_quote_item_cluster(
        self, item_id: str, name: str, position: int
    ) -> ClusterRecord:
        """Return the cluster at ``(item_id, position)``, inserting it if absent."""

    @abc.abstractmethod
    async def create_quote_item_cluster(
        self, item_id: str, name: str, position: int, markup: Markup
    ) -> ClusterRecord: ...

    @abc.abstractmethod
    async def update_quote_item_cluster(self, cluster_id: str, fields: Dict[str, Any]) -> ClusterRecord: ...

    # lines
    @abc.abstractmethod
    async def get_line(self, line_id: str) -> Optional[LineRecord]: ...

    @abc.abstractmethod
    async def create_quote_cluster_line(self, cluster_id: str, line: LineDraft) -> LineRecord: ...

    @abc.abstractmethod
    async def update_quote_cluster_line(self, line_id: str, fields: Dict[str, Any]) -> LineRecord: ...

    @abc.abstractmethod
    async def delete_quote_cluster_line(self, line_id: str) -> None: ...


class AttachmentGateway(abc.ABC):
    """Attachment records; file bytes live with the external upload service."""

    @abc.abstractmethod
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
    ) -> AttachmentRecord: ...

    @abc.abstractmethod
    async def fetch_quote_item_attachments(self, item_id: str) -> List[AttachmentRecord]: ...

    @abc.abstractmethod
    async def fetch_quote_attachments(self, quote_id: str) -> List[AttachmentRecord]:
        """Quote-level attachments only (not bound to an item)."""
