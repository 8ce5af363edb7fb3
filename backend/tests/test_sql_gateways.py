"""
test_sql_gateways.py: Write isolation in the SQLAlchemy gateways.

A failed INSERT on PostgreSQL aborts the surrounding transaction.  The SQL
gateways run each write in a SAVEPOINT so best-effort writes (attachment
copies, product images) and saga compensations can fail without taking the
request transaction down.  FakeTransactionSession reproduces the aborted
transaction behaviour without a database.
"""

import pytest
from sqlalchemy.exc import IntegrityError, PendingRollbackError

from fakes import FakeTransactionSession, SessionBoundQuoteStore, run
from app.models import orm_models as orm
from app.models.costing_types import AttachmentRecord, LineDraft, LineType
from app.models.quote_schema import CreateManualItem, CreateProductItem, CreateQuote, ManualEntry
from app.services.attachment_service import AttachmentService
from app.services.costing_config import IMAGE_ATTACH_FAILED_NOTICE
from app.services.item_lifecycle import ItemLifecycleManager
from app.services.sql_gateways import SqlAttachmentGateway, SqlQuoteStore


def _no_url(row):
    return isinstance(row, orm.QuoteAttachment) and row.file_url is None


class _SeededAttachmentGateway(SqlAttachmentGateway):
    """SQL writes, item attachments served from a fixed list."""

    def __init__(self, session, seeded):
        super().__init__(session)
        self.seeded = seeded

    async def fetch_quote_item_attachments(self, item_id):
        return [a for a in self.seeded if a.item_id == item_id]


# ---------------------------------------------------------------------------
# Gateway writes
# ---------------------------------------------------------------------------

class TestSavepointWrites:

    def test_unprotected_failed_flush_aborts_session(self):
        session = FakeTransactionSession(reject=_no_url)
        session.add(orm.QuoteAttachment(quote_id="q1", file_url=None))
        with pytest.raises(IntegrityError):
            run(session.flush())
        with pytest.raises(PendingRollbackError):
            run(session.execute("SELECT 1"))

    def test_failed_attachment_insert_keeps_session_usable(self):
        session = FakeTransactionSession(reject=_no_url)
        gateway = SqlAttachmentGateway(session)

        first = run(gateway.create_quote_attachment_from_url("q1", "i1", "https://files.example.com/a.pdf"))
        with pytest.raises(IntegrityError):
            run(gateway.create_quote_attachment_from_url("q1", "i1", None))
        third = run(gateway.create_quote_attachment_from_url("q1", "i1", "https://files.example.com/c.pdf"))

        assert session.aborted is False
        assert [r.file_url for r in session.rows] == [first.file_url, third.file_url]

    def test_failed_line_insert_allows_compensating_delete(self):
        session = FakeTransactionSession(
            reject=lambda row: isinstance(row, orm.QuoteClusterLine) and row.description == "Broken"
        )
        store = SqlQuoteStore(session)
        draft = LineDraft(line_type=LineType.MANUAL, description="Broken", qty=1, unit_cost=5.0)

        with pytest.raises(IntegrityError):
            run(store.create_quote_cluster_line("c1", draft))
        run(store.delete_quote_cluster_line("l1"))

        assert session.aborted is False
        assert len(session.statements) == 1


# ---------------------------------------------------------------------------
# Best-effort attachments on a shared transaction
# ---------------------------------------------------------------------------

class TestBestEffortAttachments:

    def _lifecycle(self, session, catalog, seeded=()):
        gateway = _SeededAttachmentGateway(session, list(seeded))
        return ItemLifecycleManager(
            store=SessionBoundQuoteStore(session),
            catalog=catalog,
            attachments=AttachmentService(gateway, probe_enabled=False),
        )

    def test_duplicate_skips_failed_attachment(self, catalog):
        session = FakeTransactionSession(reject=_no_url)
        lifecycle = self._lifecycle(session, catalog)
        quote = run(lifecycle.create_quote(CreateQuote(quote_number="Q-3001")))
        item = run(lifecycle.create_manual_item(quote.id, CreateManualItem(description="Vanity unit")))
        cluster = run(lifecycle.ensure_cluster(item.id))
        run(lifecycle.add_line(cluster.id, ManualEntry(description="Carcass", unit_cost=80.0)))
        lifecycle.attachments.gateway.seeded.extend([
            AttachmentRecord(id="a1", quote_id=quote.id, item_id=item.id, file_url="https://files.example.com/v.pdf"),
            AttachmentRecord(id="a2", quote_id=quote.id, item_id=item.id, file_url=None),
        ])

        result = run(lifecycle.duplicate_item(item.id))

        assert (result.attachments_copied, result.attachments_skipped) == (1, 1)
        assert result.item.id != item.id
        assert len(result.item.clusters[0].lines) == 1
        assert session.aborted is False

    def test_product_item_survives_image_failure(self, catalog):
        session = FakeTransactionSession(reject=lambda row: isinstance(row, orm.QuoteAttachment))
        lifecycle = self._lifecycle(session, catalog)
        quote = run(lifecycle.create_quote(CreateQuote(quote_number="Q-3002")))

        result = run(lifecycle.create_product_item(quote.id, CreateProductItem(product_id=1, qty=3)))

        assert IMAGE_ATTACH_FAILED_NOTICE in result.notices
        assert result.item.description == "Cabinet Door"
        assert len(result.lines) == 2
        assert session.aborted is False
