"""Catalog API routes: effective BOM, labour, supplier offers, collections."""
import logging
from dataclasses import asdict
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from app.api.deps import get_catalog_resolver, get_supplier_resolver
from app.services.catalog_resolver import CatalogResolver
from app.services.supplier_pricing import SupplierPriceResolver, is_lowest, select_default

router = APIRouter(prefix="/api/catalog", tags=["Catalog"])
logger = logging.getLogger("quotecost-api.catalog")


class BomRowOut(BaseModel):
    component_id: int
    quantity_required: float
    unit_cost: Optional[float] = None
    supplier_component_id: Optional[int] = None
    source: str = "direct"
    sub_product_id: Optional[int] = None


class LaborRowOut(BaseModel):
    job_id: int
    job_name: Optional[str] = None
    category_name: Optional[str] = None
    pay_type: str
    time_required: Optional[float] = None
    time_unit: str
    quantity: float
    piece_rate: Optional[float] = None
    hourly_rate: Optional[float] = None


class OfferOut(BaseModel):
    supplier_component_id: int
    component_id: int
    supplier: str = ""
    price: Optional[float] = None
    lead_time: Optional[int] = None
    min_order_quantity: Optional[float] = None
    is_lowest: bool = False


class OffersOut(BaseModel):
    component_id: int
    default_supplier_component_id: Optional[int] = None
    offers: List[OfferOut] = []


class CollectionRowOut(BaseModel):
    component_id: int
    quantity_required: float
    price: Optional[float] = None
    supplier_component_id: Optional[int] = None
    description: Optional[str] = None


def _options_from_query(options: Optional[List[str]]) -> Dict[str, str]:
    """``?option=GROUP:VALUE`` pairs → ``{group: value}``."""
    selected: Dict[str, str] = {}
    for raw in options or []:
        group, sep, value = raw.partition(":")
        if not sep or not group or not value:
            raise HTTPException(status_code=422, detail=f"Invalid option '{raw}', expected GROUP:VALUE")
        selected[group] = value
    return selected


@router.get("/products/{product_id}/effective-bom", response_model=List[BomRowOut])
async def effective_bom(
    product_id: int,
    option: Optional[List[str]] = Query(None, description="Selected option as GROUP:VALUE"),
    resolver: CatalogResolver = Depends(get_catalog_resolver),
):
    if await resolver.get_product(product_id) is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    rows = await resolver.resolve_effective_bom(product_id, _options_from_query(option))
    return [BomRowOut(**asdict(r)) for r in rows]


@router.get("/products/{product_id}/labor", response_model=List[LaborRowOut])
async def product_labor(product_id: int, resolver: CatalogResolver = Depends(get_catalog_resolver)):
    if await resolver.get_product(product_id) is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    rows = await resolver.resolve_labor(product_id)
    return [
        LaborRowOut(
            job_id=r.job_id,
            job_name=r.job_name,
            category_name=r.category_name,
            pay_type=r.pay_type.value,
            time_required=r.time_required,
            time_unit=r.time_unit.value,
            quantity=r.quantity,
            piece_rate=r.piece_rate,
            hourly_rate=r.hourly_rate,
        )
        for r in rows
    ]


@router.get("/components/{component_id}/offers", response_model=OffersOut)
async def component_offers(component_id: int, suppliers: SupplierPriceResolver = Depends(get_supplier_resolver)):
    """Supplier offers with the lowest-price default and every lowest offer flagged."""
    offers = await suppliers.list_offers(component_id)
    default = select_default(offers)
    return OffersOut(
        component_id=component_id,
        default_supplier_component_id=default.supplier_component_id if default else None,
        offers=[OfferOut(**asdict(o), is_lowest=is_lowest(o, offers)) for o in offers],
    )


@router.get("/collections/{collection_id}/items", response_model=List[CollectionRowOut])
async def collection_items(collection_id: int, resolver: CatalogResolver = Depends(get_catalog_resolver)):
    rows = await resolver.resolve_collection(collection_id)
    return [CollectionRowOut(**asdict(r)) for r in rows]
