"""FastAPI dependency injection: per-request gateways and services."""
from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_db
from app.services.attachment_service import AttachmentService
from app.services.catalog_resolver import CatalogResolver
from app.services.errors import CostingError
from app.services.item_lifecycle import ItemLifecycleManager
from app.services.sql_gateways import SqlAttachmentGateway, SqlCatalogGateway, SqlQuoteStore
from app.services.supplier_pricing import SupplierPriceResolver


def get_catalog(db: AsyncSession = Depends(get_db)) -> SqlCatalogGateway:
    return SqlCatalogGateway(db)


def get_lifecycle(db: AsyncSession = Depends(get_db)) -> ItemLifecycleManager:
    """One manager (and workspace) per request, sharing the request's session."""
    return ItemLifecycleManager(
        store=SqlQuoteStore(db),
        catalog=SqlCatalogGateway(db),
        attachments=AttachmentService(SqlAttachmentGateway(db)),
    )


def get_catalog_resolver(catalog: SqlCatalogGateway = Depends(get_catalog)) -> CatalogResolver:
    return CatalogResolver(catalog)


def get_supplier_resolver(catalog: SqlCatalogGateway = Depends(get_catalog)) -> SupplierPriceResolver:
    return SupplierPriceResolver(catalog)


def http_error(exc: CostingError) -> HTTPException:
    """Translate a service error into the HTTP status it carries."""
    detail = {"message": exc.message}
    if exc.context:
        detail["context"] = {k: str(v) for k, v in exc.context.items()}
    return HTTPException(status_code=exc.status_code, detail=detail)
