"""
SQLAlchemy implementations of the costing gateways.

One instance per request, bound to the request's ``AsyncSession``; the session
dependency commits or rolls back at the end of the request.  Writes run in a
SAVEPOINT so a failed statement leaves that transaction usable.  Relationship
collections are always eager-loaded (selectinload) because lazy loads are not
available under asyncio.
"""
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models import orm_models as orm
from app.models.costing_types import (
    AttachmentRecord,
    BomRow,
    ClusterRecord,
    CollectionRow,
    ComponentRecord,
    ItemType,
    LaborRow,
    LineDraft,
    LineRecord,
    LineType,
    Markup,
    MarkupType,
    OverheadBasis,
    OverheadRow,
    PayType,
    ProductImage,
    ProductRecord,
    QuoteItemRecord,
    QuoteRecord,
    SelectedOptions,
    SupplierOffer,
    TextAlign,
    TimeUnit,
    markup_from_columns,
)
from app.services.errors import CommandValidationError, NotFoundError
from app.services.gateways import AttachmentGateway, CatalogGateway, QuoteStore

logger = logging.getLogger("quotecost-db")


async def _flush(session: AsyncSession, row: Any) -> None:
    """
    Insert ``row`` inside a SAVEPOINT.

    A failed INSERT then rolls back only the savepoint, and the request
    transaction stays usable for the caller's next read or compensation.
    """
    async with session.begin_nested():
        session.add(row)
        await session.flush()


def _column_value(value: Any) -> Any:
    """Enum members are stored by value."""
    return getattr(value, "value", value)


# ── row → record ─────────────────────────────────────────────────────────────

def _line_record(row: orm.QuoteClusterLine) -> LineRecord:
    return LineRecord(
        id=row.id,
        cluster_id=row.cluster_id,
        line_type=LineType(row.line_type),
        description=row.description,
        qty=row.qty,
        unit_cost=row.unit_cost,
        component_id=row.component_id,
        supplier_component_id=row.supplier_component_id,
        product_id=row.product_id,
        include_in_markup=row.include_in_markup,
        sort_order=row.sort_order,
        labor_type=PayType(row.labor_type) if row.labor_type else None,
        hours=row.hours,
        rate=row.rate,
        cutlist_slot=row.cutlist_slot,
    )


def _cluster_record(row: orm.QuoteItemCluster) -> ClusterRecord:
    return ClusterRecord(
        id=row.id,
        item_id=row.item_id,
        name=row.name,
        position=row.position,
        markup=markup_from_columns(row.markup_type, row.markup_value),
        lines=[_line_record(line) for line in row.lines],
    )


def _item_record(row: orm.QuoteItem) -> QuoteItemRecord:
    return QuoteItemRecord(
        id=row.id,
        quote_id=row.quote_id,
        description=row.description,
        qty=row.qty,
        unit_price=row.unit_price,
        item_type=ItemType(row.item_type),
        text_align=TextAlign(row.text_align),
        bullet_points=row.bullet_points,
        internal_notes=row.internal_notes,
        selected_options=dict(row.selected_options or {}),
        position=row.position,
        clusters=[_cluster_record(c) for c in row.clusters],
    )


def _quote_record(row: orm.Quote) -> QuoteRecord:
    return QuoteRecord(
        id=row.id,
        quote_number=row.quote_number,
        customer_name=row.customer_name,
        status=row.status,
    )


def _attachment_record(row: orm.QuoteAttachment) -> AttachmentRecord:
    return AttachmentRecord(
        id=row.id,
        quote_id=row.quote_id,
        item_id=row.item_id,
        file_url=row.file_url,
        mime_type=row.mime_type,
        original_name=row.original_name,
        file_size=row.file_size,
        display_in_quote=row.display_in_quote,
        display_order=row.display_order,
    )


def _option_filter(selected_options: SelectedOptions):
    """Base rows always apply; option rows only when their option is selected."""
    clauses = [orm.BillOfMaterials.option_group_code.is_(None)]
    for group, value in selected_options.items():
        clauses.append(and_(
            orm.BillOfMaterials.option_group_code == group,
            orm.BillOfMaterials.option_value_code == value,
        ))
    return or_(*clauses)


# ── Catalog ──────────────────────────────────────────────────────────────────

class SqlCatalogGateway(CatalogGateway):

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def fetch_product(self, product_id: int) -> Optional[ProductRecord]:
        row = await self.session.get(orm.Product, product_id)
        if row is None:
            return None
        return ProductRecord(product_id=row.product_id, internal_code=row.internal_code, name=row.name)

    async def _bom_rows(
        self,
        product_id: int,
        selected_options: SelectedOptions,
        scale: float = 1.0,
        source: str = "direct",
        sub_product_id: Optional[int] = None,
    ) -> List[BomRow]:
        stmt = (
            select(orm.BillOfMaterials, orm.SupplierComponent.price)
            .outerjoin(
                orm.SupplierComponent,
                orm.SupplierComponent.supplier_component_id == orm.BillOfMaterials.supplier_component_id,
            )
            .where(orm.BillOfMaterials.product_id == product_id, _option_filter(selected_options))
            .order_by(orm.BillOfMaterials.bom_id)
        )
        result = await self.session.execute(stmt)
        return [
            BomRow(
                component_id=bom.component_id,
                quantity_required=float(bom.quantity_required) * scale,
                unit_cost=price,
                supplier_component_id=bom.supplier_component_id,
                source=source,
                sub_product_id=sub_product_id,
            )
            for bom, price in result.all()
        ]

    async def _links(self, product_id: int) -> List[orm.ProductBomLink]:
        result = await self.session.execute(
            select(orm.ProductBomLink)
            .where(orm.ProductBomLink.product_id == product_id)
            .order_by(orm.ProductBomLink.link_id)
        )
        return list(result.scalars().all())

    async def fetch_effective_bom(self, product_id: int, selected_options: SelectedOptions) -> List[BomRow]:
        rows = await self._bom_rows(product_id, selected_options, source="effective")
        for link in await self._links(product_id):
            rows.extend(await self._bom_rows(
                link.sub_product_id,
                selected_options,
                scale=float(link.scale),
                source="link",
                sub_product_id=link.sub_product_id,
            ))
        return rows

    async def fetch_product_components(self, product_id: int, selected_options: SelectedOptions) -> List[BomRow]:
        return await self._bom_rows(product_id, selected_options)

    async def _piece_rate(self, job_id: int, product_id: int, today: date) -> Optional[float]:
        """Effective piece rate; product-specific rows beat generic ones, then newest first."""
        stmt = (
            select(orm.PieceWorkRate.rate)
            .where(
                orm.PieceWorkRate.job_id == job_id,
                or_(orm.PieceWorkRate.product_id == product_id, orm.PieceWorkRate.product_id.is_(None)),
                orm.PieceWorkRate.effective_date <= today,
                or_(orm.PieceWorkRate.end_date.is_(None), orm.PieceWorkRate.end_date >= today),
            )
            .order_by(
                orm.PieceWorkRate.product_id.is_(None),
                orm.PieceWorkRate.effective_date.desc(),
            )
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def _hourly_rate(self, job_id: int, today: date) -> Optional[float]:
        stmt = (
            select(orm.JobHourlyRate.hourly_rate)
            .where(
                orm.JobHourlyRate.job_id == job_id,
                orm.JobHourlyRate.effective_date <= today,
                or_(orm.JobHourlyRate.end_date.is_(None), orm.JobHourlyRate.end_date >= today),
            )
            .order_by(orm.JobHourlyRate.effective_date.desc())
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def _labor_rows(self, product_id: int, scale: float, today: date) -> List[LaborRow]:
        stmt = (
            select(orm.BillOfLabour, orm.Job, orm.JobCategory)
            .join(orm.Job, orm.Job.job_id == orm.BillOfLabour.job_id)
            .outerjoin(orm.JobCategory, orm.JobCategory.category_id == orm.Job.category_id)
            .where(orm.BillOfLabour.product_id == product_id)
            .order_by(orm.BillOfLabour.bol_id)
        )
        rows: List[LaborRow] = []
        for bol, job, category in (await self.session.execute(stmt)).all():
            pay_type = PayType(bol.pay_type)
            piece_rate = hourly_rate = None
            if pay_type is PayType.PIECE:
                piece_rate = bol.piece_rate
                if piece_rate is None:
                    piece_rate = await self._piece_rate(job.job_id, product_id, today)
            else:
                hourly_rate = bol.hourly_rate
                if hourly_rate is None:
                    hourly_rate = await self._hourly_rate(job.job_id, today)
                if hourly_rate is None and category is not None:
                    hourly_rate = category.current_hourly_rate
            rows.append(LaborRow(
                job_id=job.job_id,
                job_name=job.name,
                pay_type=pay_type,
                time_required=bol.time_required,
                time_unit=TimeUnit(bol.time_unit),
                quantity=float(bol.quantity) * scale,
                category_name=category.name if category is not None else None,
                piece_rate=piece_rate,
                hourly_rate=hourly_rate,
            ))
        return rows

    async def fetch_product_labor(self, product_id: int) -> List[LaborRow]:
        today = date.today()
        rows = await self._labor_rows(product_id, 1.0, today)
        for link in await self._links(product_id):
            rows.extend(await self._labor_rows(link.sub_product_id, float(link.scale), today))
        return rows

    async def fetch_components_by_ids(self, ids: Iterable[int]) -> List[ComponentRecord]:
        id_list = list(ids)
        if not id_list:
            return []
        result = await self.session.execute(
            select(orm.Component).where(orm.Component.component_id.in_(id_list))
        )
        return [
            ComponentRecord(component_id=c.component_id, internal_code=c.internal_code, description=c.description)
            for c in result.scalars().all()
        ]

    async def fetch_supplier_components_for_component(self, component_id: int) -> List[SupplierOffer]:
        result = await self.session.execute(
            select(orm.SupplierComponent, orm.Supplier.name)
            .join(orm.Supplier, orm.Supplier.supplier_id == orm.SupplierComponent.supplier_id)
            .where(orm.SupplierComponent.component_id == component_id)
            .order_by(orm.SupplierComponent.supplier_component_id)
        )
        return [
            SupplierOffer(
                supplier_component_id=sc.supplier_component_id,
                component_id=sc.component_id,
                supplier=name,
                price=sc.price,
                lead_time=sc.lead_time,
                min_order_quantity=sc.min_order_quantity,
            )
            for sc, name in result.all()
        ]

    async def fetch_primary_product_image(self, product_id: int) -> Optional[ProductImage]:
        result = await self.session.execute(
            select(orm.ProductImage)
            .where(orm.ProductImage.product_id == product_id)
            .order_by(orm.ProductImage.is_primary.desc(), orm.ProductImage.display_order, orm.ProductImage.image_id)
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return ProductImage(url=row.image_url, original_name=row.original_name)

    async def fetch_collection_items(self, collection_id: int) -> List[CollectionRow]:
        if await self.session.get(orm.BomCollection, collection_id) is None:
            raise NotFoundError(f"Collection {collection_id} not found", collection_id=collection_id)
        result = await self.session.execute(
            select(orm.BomCollectionItem, orm.Component, orm.SupplierComponent.price)
            .join(orm.Component, orm.Component.component_id == orm.BomCollectionItem.component_id)
            .outerjoin(
                orm.SupplierComponent,
                orm.SupplierComponent.supplier_component_id == orm.BomCollectionItem.supplier_component_id,
            )
            .where(orm.BomCollectionItem.collection_id == collection_id)
            .order_by(orm.BomCollectionItem.sort_order, orm.BomCollectionItem.item_id)
        )
        return [
            CollectionRow(
                component_id=item.component_id,
                quantity_required=item.quantity_required,
                price=price,
                supplier_component_id=item.supplier_component_id,
                description=component.description or component.internal_code,
            )
            for item, component, price in result.all()
        ]

    async def fetch_product_overheads(self, product_id: int) -> List[OverheadRow]:
        result = await self.session.execute(
            select(orm.ProductOverheadCost, orm.OverheadCostElement)
            .join(orm.OverheadCostElement, orm.OverheadCostElement.element_id == orm.ProductOverheadCost.element_id)
            .where(orm.ProductOverheadCost.product_id == product_id, orm.OverheadCostElement.is_active.is_(True))
            .order_by(orm.ProductOverheadCost.id)
        )
        return [
            OverheadRow(
                element_id=element.element_id,
                name=element.name,
                cost_type=MarkupType(element.cost_type),
                value=link.override_value if link.override_value is not None else element.default_value,
                quantity=link.quantity,
                percentage_basis=OverheadBasis(element.percentage_basis) if element.percentage_basis else None,
            )
            for link, element in result.all()
        ]


# ── Quotes ───────────────────────────────────────────────────────────────────

_ITEM_COLUMNS = {
    "description", "qty", "unit_price", "item_type", "text_align",
    "bullet_points", "internal_notes", "selected_options",
}
_LINE_COLUMNS = {
    "line_type", "description", "qty", "unit_cost", "component_id", "supplier_component_id",
    "product_id", "include_in_markup", "sort_order", "labor_type", "hours", "rate", "cutlist_slot",
}


class SqlQuoteStore(QuoteStore):

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _item_query(self):
        return (
            select(orm.QuoteItem)
            .options(selectinload(orm.QuoteItem.clusters).selectinload(orm.QuoteItemCluster.lines))
            .execution_options(populate_existing=True)
        )

    def _cluster_query(self):
        return (
            select(orm.QuoteItemCluster)
            .options(selectinload(orm.QuoteItemCluster.lines))
            .execution_options(populate_existing=True)
        )

    # quotes
    async def create_quote(self, quote_number: str, customer_name: Optional[str], status: str) -> QuoteRecord:
        existing = await self.session.execute(
            select(orm.Quote.id).where(orm.Quote.quote_number == quote_number)
        )
        if existing.scalar_one_or_none() is not None:
            raise CommandValidationError(f"Quote number {quote_number} already exists", quote_number=quote_number)
        row = orm.Quote(quote_number=quote_number, customer_name=customer_name, status=status)
        await _flush(self.session, row)
        return _quote_record(row)

    async def get_quote(self, quote_id: str) -> Optional[QuoteRecord]:
        row = await self.session.get(orm.Quote, quote_id)
        return _quote_record(row) if row is not None else None

    async def delete_quote(self, quote_id: str) -> None:
        async with self.session.begin_nested():
            await self.session.execute(delete(orm.Quote).where(orm.Quote.id == quote_id))

    # items
    async def list_items(self, quote_id: str) -> List[QuoteItemRecord]:
        result = await self.session.execute(
            self._item_query()
            .where(orm.QuoteItem.quote_id == quote_id)
            .order_by(orm.QuoteItem.position, orm.QuoteItem.created_at)
        )
        return [_item_record(row) for row in result.scalars().all()]

    async def get_item(self, item_id: str) -> Optional[QuoteItemRecord]:
        result = await self.session.execute(self._item_query().where(orm.QuoteItem.id == item_id))
        row = result.scalar_one_or_none()
        return _item_record(row) if row is not None else None

    async def create_quote_item(self, quote_id: str, fields: Dict[str, Any]) -> QuoteItemRecord:
        next_position = (await self.session.execute(
            select(func.coalesce(func.max(orm.QuoteItem.position) + 1, 0))
            .where(orm.QuoteItem.quote_id == quote_id)
        )).scalar_one()
        values = {k: _column_value(v) for k, v in fields.items() if k in _ITEM_COLUMNS}
        row = orm.QuoteItem(quote_id=quote_id, position=next_position, **values)
        await _flush(self.session, row)
        return await self.get_item(row.id)

    async def update_quote_item(self, item_id: str, fields: Dict[str, Any]) -> QuoteItemRecord:
        row = await self.session.get(orm.QuoteItem, item_id)
        if row is None:
            raise NotFoundError(f"Quote item {item_id} not found", item_id=item_id)
        async with self.session.begin_nested():
            for key, value in fields.items():
                if key in _ITEM_COLUMNS:
                    setattr(row, key, _column_value(value))
        return await self.get_item(item_id)

    async def delete_quote_item(self, item_id: str) -> None:
        async with self.session.begin_nested():
            await self.session.execute(delete(orm.QuoteItem).where(orm.QuoteItem.id == item_id))

    async def reorder_quote_items(self, quote_id: str, item_ids: List[str]) -> None:
        result = await self.session.execute(select(orm.QuoteItem).where(orm.QuoteItem.quote_id == quote_id))
        rows = {row.id: row for row in result.scalars().all()}
        if set(rows) != set(item_ids) or len(item_ids) != len(rows):
            raise CommandValidationError("Item order does not match the quote's items", quote_id=quote_id)
        async with self.session.begin_nested():
            for position, item_id in enumerate(item_ids):
                rows[item_id].position = position

    # clusters
    async def get_cluster(self, cluster_id: str) -> Optional[ClusterRecord]:
        result = await self.session.execute(self._cluster_query().where(orm.QuoteItemCluster.id == cluster_id))
        row = result.scalar_one_or_none()
        return _cluster_record(row) if row is not None else None

    async def get_or_create_quote_item_cluster(self, item_id: str, name: str, position: int) -> ClusterRecord:
        async with self.session.begin_nested():
            await self.session.execute(
                pg_insert(orm.QuoteItemCluster)
                .values(
                    id=orm.gen_uuid(),
                    item_id=item_id,
                    name=name,
                    position=position,
                    markup_type=MarkupType.PERCENTAGE.value,
                    markup_value=0.0,
                )
                .on_conflict_do_nothing(index_elements=["item_id", "position"])
            )
        result = await self.session.execute(
            self._cluster_query().where(
                orm.QuoteItemCluster.item_id == item_id,
                orm.QuoteItemCluster.position == position,
            )
        )
        return _cluster_record(result.scalar_one())

    async def create_quote_item_cluster(self, item_id: str, name: str, position: int, markup: Markup) -> ClusterRecord:
        row = orm.QuoteItemCluster(
            item_id=item_id,
            name=name,
            position=position,
            markup_type=markup.markup_type.value,
            markup_value=markup.value,
        )
        await _flush(self.session, row)
        return await self.get_cluster(row.id)

    async def update_quote_item_cluster(self, cluster_id: str, fields: Dict[str, Any]) -> ClusterRecord:
        row = await self.session.get(orm.QuoteItemCluster, cluster_id)
        if row is None:
            raise NotFoundError(f"Cluster {cluster_id} not found", cluster_id=cluster_id)
        async with self.session.begin_nested():
            if "name" in fields:
                row.name = fields["name"]
            if "markup" in fields:
                markup: Markup = fields["markup"]
                row.markup_type = markup.markup_type.value
                row.markup_value = markup.value
        return await self.get_cluster(cluster_id)

    # lines
    async def get_line(self, line_id: str) -> Optional[LineRecord]:
        row = await self.session.get(orm.QuoteClusterLine, line_id, populate_existing=True)
        return _line_record(row) if row is not None else None

    async def create_quote_cluster_line(self, cluster_id: str, line: LineDraft) -> LineRecord:
        values = {name: _column_value(getattr(line, name)) for name in _LINE_COLUMNS}
        row = orm.QuoteClusterLine(cluster_id=cluster_id, **values)
        await _flush(self.session, row)
        return _line_record(row)

    async def update_quote_cluster_line(self, line_id: str, fields: Dict[str, Any]) -> LineRecord:
        row = await self.session.get(orm.QuoteClusterLine, line_id)
        if row is None:
            raise NotFoundError(f"Cost line {line_id} not found", line_id=line_id)
        async with self.session.begin_nested():
            for key, value in fields.items():
                if key in _LINE_COLUMNS:
                    setattr(row, key, _column_value(value))
        return _line_record(row)

    async def delete_quote_cluster_line(self, line_id: str) -> None:
        async with self.session.begin_nested():
            await self.session.execute(delete(orm.QuoteClusterLine).where(orm.QuoteClusterLine.id == line_id))


# ── Attachments ──────────────────────────────────────────────────────────────

class SqlAttachmentGateway(AttachmentGateway):

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

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
        row = orm.QuoteAttachment(
            quote_id=quote_id,
            item_id=item_id,
            file_url=file_url,
            original_name=original_name,
            mime_type=mime_type,
            file_size=file_size,
            display_in_quote=display_in_quote,
            display_order=display_order,
        )
        await _flush(self.session, row)
        return _attachment_record(row)

    async def _fetch(self, *criteria) -> List[AttachmentRecord]:
        result = await self.session.execute(
            select(orm.QuoteAttachment)
            .where(*criteria)
            .order_by(orm.QuoteAttachment.display_order, orm.QuoteAttachment.uploaded_at)
        )
        return [_attachment_record(row) for row in result.scalars().all()]

    async def fetch_quote_item_attachments(self, item_id: str) -> List[AttachmentRecord]:
        return await self._fetch(orm.QuoteAttachment.item_id == item_id)

    async def fetch_quote_attachments(self, quote_id: str) -> List[AttachmentRecord]:
        return await self._fetch(orm.QuoteAttachment.quote_id == quote_id, orm.QuoteAttachment.item_id.is_(None))
