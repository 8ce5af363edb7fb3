"""
Quote attachments recorded from URLs (product images, duplicated files).

File bytes are owned by the external upload service; this module only records
the URL.  When probing is enabled a HEAD request fills in the content type and
size; an unreachable URL is still recorded without them.
"""
import logging
from typing import List, Optional, Tuple

import httpx

from app.models.costing_types import AttachmentRecord
from app.services.costing_config import (
    ATTACHMENT_PROBE_ENABLED,
    ATTACHMENT_PROBE_TIMEOUT_S,
    DEFAULT_ATTACHMENT_MIME,
)
from app.services.gateways import AttachmentGateway, CatalogGateway

logger = logging.getLogger("quotecost-attachments")


def _name_from_url(url: str) -> str:
    tail = url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
    return tail or "attachment"


class AttachmentService:

    def __init__(
        self,
        gateway: AttachmentGateway,
        probe_enabled: bool = ATTACHMENT_PROBE_ENABLED,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.gateway = gateway
        self.probe_enabled = probe_enabled
        self._transport = transport

    async def probe(self, url: str) -> Tuple[Optional[str], Optional[int]]:
        """HEAD the URL; returns ``(mime_type, size)`` or ``(None, None)``."""
        if not self.probe_enabled:
            return None, None
        try:
            async with httpx.AsyncClient(
                timeout=ATTACHMENT_PROBE_TIMEOUT_S,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                resp = await client.head(url)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.info(f"Attachment probe failed for {url}: {e}")
            return None, None

        mime = resp.headers.get("content-type")
        if mime:
            mime = mime.split(";", 1)[0].strip()
        length = resp.headers.get("content-length")
        size = int(length) if length and length.isdigit() else None
        return mime or DEFAULT_ATTACHMENT_MIME, size

    async def attach_from_url(
        self,
        quote_id: str,
        item_id: Optional[str],
        url: str,
        original_name: Optional[str] = None,
    ) -> AttachmentRecord:
        mime_type, size = await self.probe(url)
        return await self.gateway.create_quote_attachment_from_url(
            quote_id,
            item_id,
            url,
            original_name=original_name or _name_from_url(url),
            mime_type=mime_type,
            file_size=size,
        )

    async def attach_primary_product_image(
        self, catalog: CatalogGateway, quote_id: str, item_id: str, product_id: int
    ) -> Optional[AttachmentRecord]:
        """Attach the product's primary image to the item; None when it has none."""
        image = await catalog.fetch_primary_product_image(product_id)
        if image is None or not image.url:
            return None
        record = await self.attach_from_url(quote_id, item_id, image.url, image.original_name)
        logger.info(
            "Product image attached",
            extra={"quote_id": quote_id, "item_id": item_id, "product_id": product_id},
        )
        return record

    async def duplicate(
        self, attachment: AttachmentRecord, quote_id: str, item_id: Optional[str]
    ) -> AttachmentRecord:
        """Re-record an existing attachment against another item / quote (no probe)."""
        return await self.gateway.create_quote_attachment_from_url(
            quote_id,
            item_id,
            attachment.file_url,
            original_name=attachment.original_name,
            mime_type=attachment.mime_type,
            file_size=attachment.file_size,
            display_in_quote=attachment.display_in_quote,
            display_order=attachment.display_order,
        )

    async def list_item_attachments(self, item_id: str) -> List[AttachmentRecord]:
        return await self.gateway.fetch_quote_item_attachments(item_id)

    async def list_quote_attachments(self, quote_id: str) -> List[AttachmentRecord]:
        return await self.gateway.fetch_quote_attachments(quote_id)
