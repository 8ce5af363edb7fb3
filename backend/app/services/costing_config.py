"""
Costing configuration: single source of truth for defaults, labels and
environment-driven settings.

Import from here in services and routers rather than hardcoding values.
"""
from __future__ import annotations

import os

# ── Clusters ───────────────────────────────────────────────────────────────────

# Name given to the cluster created on demand for an item with none
DEFAULT_CLUSTER_NAME: str = "Costing Cluster"

# Position of the get-or-create cluster; (item, position) is unique
DEFAULT_CLUSTER_POSITION: int = 0

# ── Line descriptions ──────────────────────────────────────────────────────────

LABOUR_DESCRIPTION_PREFIX: str = "Labour – "
LABOUR_CATEGORY_SEPARATOR: str = " · "
COMPONENT_FALLBACK_DESCRIPTION: str = "Component {component_id}"
JOB_FALLBACK_NAME: str = "Job {job_id}"
OVERHEAD_DESCRIPTION_PREFIX: str = "Overhead – "

# ── Time units → hours ─────────────────────────────────────────────────────────

SECONDS_PER_HOUR: float = 3600.0
MINUTES_PER_HOUR: float = 60.0

# ── User-facing notices ────────────────────────────────────────────────────────

NO_COSTING_LINES_NOTICE: str = "No costing lines found for this product"
IMAGE_ATTACH_FAILED_NOTICE: str = "Product image could not be attached"
EMPTY_COLLECTION_NOTICE: str = "Collection has no items"

# ── Attachments ────────────────────────────────────────────────────────────────

# HEAD-probe product image URLs for mime type and size before recording them
ATTACHMENT_PROBE_ENABLED: bool = os.getenv("ATTACHMENT_PROBE_ENABLED", "true").lower() in ("1", "true", "yes")
ATTACHMENT_PROBE_TIMEOUT_S: float = float(os.getenv("ATTACHMENT_PROBE_TIMEOUT_S", "5.0"))
DEFAULT_ATTACHMENT_MIME: str = "application/octet-stream"

# ── Quotes ─────────────────────────────────────────────────────────────────────

QUOTE_STATUSES: tuple[str, ...] = ("draft", "sent", "accepted", "rejected", "expired")
DEFAULT_QUOTE_STATUS: str = "draft"
