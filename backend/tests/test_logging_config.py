"""
test_logging_config.py: JSON log payloads and the request timing middleware.
"""

import json
import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.services.logging_config import JSONFormatter
from app.services.middleware import RequestTimingMiddleware


def _record(**extra):
    record = logging.LogRecord("quotecost-lifecycle", logging.INFO, __file__, 10, "Quote item deleted", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_context_fields_copied(self):
        payload = json.loads(JSONFormatter().format(_record(quote_id="q1", item_id="i1", duration_ms=3.2)))
        assert payload["message"] == "Quote item deleted"
        assert (payload["quote_id"], payload["item_id"], payload["duration_ms"]) == ("q1", "i1", 3.2)
        assert "cluster_id" not in payload

    def test_unknown_extra_not_copied(self):
        payload = json.loads(JSONFormatter().format(_record(secret="x")))
        assert "secret" not in payload


class TestRequestTimingMiddleware:

    def _client(self):
        app = FastAPI()
        app.add_middleware(RequestTimingMiddleware)

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        return TestClient(app)

    def test_headers_added(self):
        resp = self._client().get("/ping")
        assert resp.headers["X-Request-ID"]
        assert float(resp.headers["X-Process-Time"]) >= 0

    def test_incoming_request_id_kept(self):
        resp = self._client().get("/ping", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"
