"""
HTTP surface tests through FastAPI's TestClient.

The tenant session dependency is replaced by a fake session; service calls
that would need the database are monkeypatched to return or raise directly.
"""
from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from tracker.api.main import app
from tracker.core.deps import get_tenant_session
from tracker.core.security import create_access_token
from tracker.domain.exceptions import LockedForEdit, QuantityExceeded, StepQuantityExceeded
from tracker.services.production import ReleaseService
from tracker.services.quality import InspectionService

from conftest import TENANT_ID, FakeSession


async def _fake_tenant_session():
    yield FakeSession()


@pytest.fixture
def client():
    app.dependency_overrides[get_tenant_session] = _fake_tenant_session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_headers(*roles, tenant=TENANT_ID, token_tenant=None):
    token = create_access_token(
        subject="user-1", tenant_id=str(token_tenant or tenant), roles=list(roles)
    )
    return {"Authorization": f"Bearer {token}", "X-Tenant-ID": str(tenant)}


# =============================================================================
# Health and plumbing
# =============================================================================


def test_health(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["message"] == "Healthy"


def test_correlation_id_is_echoed(client):
    resp = client.get("/api/v1/health", headers={"X-Correlation-ID": "corr-42"})
    assert resp.headers["X-Correlation-ID"] == "corr-42"


def test_tenant_header_must_be_a_uuid(client):
    headers = auth_headers("production:view", tenant="acme")
    resp = client.post("/api/v1/drawing-batches/parse", json={"text": ""}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "http_error"


# =============================================================================
# Authentication and roles
# =============================================================================


class TestAuth:

    def test_missing_token(self, client):
        resp = client.post("/api/v1/drawing-batches/parse", json={"text": ""}, headers={"X-Tenant-ID": str(TENANT_ID)})
        assert resp.status_code == 401

    def test_token_for_other_tenant(self, client):
        headers = auth_headers("production:view", token_tenant=uuid4())
        resp = client.post("/api/v1/drawing-batches/parse", json={"text": ""}, headers=headers)
        assert resp.status_code == 403

    def test_role_not_allowed(self, client):
        resp = client.post(
            "/api/v1/drawing-batches/parse", json={"text": ""}, headers=auth_headers("finance:view")
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["message"] == "Insufficient role"

    def test_garbage_token(self, client):
        headers = {"Authorization": "Bearer not-a-jwt", "X-Tenant-ID": str(TENANT_ID)}
        resp = client.post("/api/v1/drawing-batches/parse", json={"text": ""}, headers=headers)
        assert resp.status_code == 401


# =============================================================================
# Drawing batch endpoints
# =============================================================================


class TestDrawingBatches:

    def test_parse(self, client):
        resp = client.post(
            "/api/v1/drawing-batches/parse",
            json={"text": "D-1 | Qty: 5 | Unit: pcs\nD-2 | qty=2.50"},
            headers=auth_headers("production:view"),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert [e["drawing_no"] for e in body["entries"]] == ["D-1", "D-2"]
        assert body["entries"][1]["quantity"] == "2.5"
        assert Decimal(body["total_quantity"]) == Decimal("7.5")

    def test_format(self, client):
        resp = client.post(
            "/api/v1/drawing-batches/format",
            json={"entries": [{"drawing_no": "D-1", "quantity": "5.000", "unit": "pcs"}, {}]},
            headers=auth_headers("quality:view"),
        )
        assert resp.status_code == 200
        assert resp.json()["text"] == "D-1 | Qty: 5 | Unit: pcs"

    def test_paste_rows(self, client):
        resp = client.post(
            "/api/v1/drawing-batches/paste",
            json={
                "raw_text": "D-2\t4\tpcs\nD-3\t6\tpcs",
                "insertion_index": 1,
                "entries": [{"drawing_no": "D-1", "quantity": "1"}, {}],
            },
            headers=auth_headers("production:manage"),
        )
        body = resp.json()
        assert body["applied"] is True
        assert [e["drawing_no"] for e in body["entries"]] == ["D-1", "D-2", "D-3"]

    def test_single_value_is_not_a_paste(self, client):
        entries = [{"drawing_no": "D-1", "quantity": "1", "unit": None, "rff_ref": None, "transmittal_ref": None}]
        resp = client.post(
            "/api/v1/drawing-batches/paste",
            json={"raw_text": "D-77", "insertion_index": 0, "entries": entries},
            headers=auth_headers("production:manage"),
        )
        body = resp.json()
        assert body["applied"] is False
        assert body["entries"] == entries


# =============================================================================
# Domain errors in the error envelope
# =============================================================================


class TestErrorEnvelope:

    def test_quantity_exceeded_is_409(self, client, monkeypatch):
        async def refuse(self, payload, actor):
            raise QuantityExceeded(requested=Decimal("50"), ceiling=Decimal("40"))

        monkeypatch.setattr(ReleaseService, "create_release", refuse)
        resp = client.post(
            "/api/v1/releases",
            json={"work_item_id": str(uuid4()), "release_quantity": "50"},
            headers=auth_headers("production:manage"),
        )
        assert resp.status_code == 409
        body = resp.json()
        assert body["status"] == 409
        assert body["error"]["type"] == "QUANTITY_EXCEEDED"
        assert body["error"]["details"] == {"requested": "50", "ceiling": "40"}
        assert body["tenant_id"] == str(TENANT_ID)
        assert body["path"] == "/api/v1/releases"

    def test_locked_release_is_423(self, client, monkeypatch):
        release_id = uuid4()

        async def locked(self, rid, payload, actor):
            raise LockedForEdit("Release", rid, "an inspection of this release has recorded results")

        monkeypatch.setattr(ReleaseService, "update_release", locked)
        resp = client.patch(
            f"/api/v1/releases/{release_id}",
            json={"release_quantity": "5"},
            headers=auth_headers("admin"),
        )
        assert resp.status_code == 423
        assert resp.json()["error"]["details"]["id"] == str(release_id)

    def test_step_over_ceiling_is_409(self, client, monkeypatch):
        captured = {}

        async def over(self, inspection_id, edits, actor):
            captured["edits"] = edits
            raise StepQuantityExceeded("Welding", Decimal("11"), Decimal("10"))

        monkeypatch.setattr(InspectionService, "save_steps", over)
        step_id = uuid4()
        resp = client.put(
            f"/api/v1/inspections/{uuid4()}/steps",
            json={"steps": [{"step_id": str(step_id), "approved_qty": "9", "rejected_qty": "2"}]},
            headers=auth_headers("quality:manage"),
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["type"] == "STEP_QUANTITY_EXCEEDED"
        assert resp.json()["error"]["details"]["step"] == "Welding"
        (edit,) = captured["edits"]
        assert edit.key == step_id
        assert edit.rejected_qty == Decimal("2")
        assert edit.remarks is None

    def test_request_validation_is_422(self, client):
        resp = client.post(
            "/api/v1/releases", json={"release_quantity": "5"}, headers=auth_headers("production:manage")
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["type"] == "validation_error"

    def test_unknown_override_field_is_422(self, client):
        resp = client.put(
            f"/api/v1/inspections/{uuid4()}/overrides/weight",
            json={"value": "1"},
            headers=auth_headers("admin"),
        )
        assert resp.status_code == 422


# =============================================================================
# WebSocket
# =============================================================================


class TestDeliverySocket:

    def test_rejects_missing_token(self, client):
        with client.websocket_connect("/ws/delivery", headers={"X-Tenant-ID": str(TENANT_ID)}) as ws:
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_text()
        assert exc.value.code == 4401

    def test_rejects_other_tenant(self, client):
        token = create_access_token(subject="user-1", tenant_id=str(uuid4()))
        with client.websocket_connect(
            f"/ws/delivery?token={token}", headers={"X-Tenant-ID": str(TENANT_ID)}
        ) as ws:
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_text()
        assert exc.value.code == 4403

    def test_ping(self, client):
        token = create_access_token(subject="user-1", tenant_id=str(TENANT_ID))
        with client.websocket_connect(
            f"/ws/delivery?token={token}", headers={"X-Tenant-ID": str(TENANT_ID)}
        ) as ws:
            ws.send_text("ping")
            assert ws.receive_text() == "pong"
