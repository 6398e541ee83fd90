"""API tests through the ASGI app with auth and the session manager overridden."""

import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from shoplist.auth import get_current_user
from shoplist.main import app
from shoplist.sessions import SessionManager, get_session_manager
from shoplist.store.memory import MemoryStore
from tests.conftest import ALICE, FakeBarcodeResolver, FakeBlobStore, fake_verifier


@pytest.fixture
def manager(settings):
    return SessionManager(
        MemoryStore(),
        blob_store=FakeBlobStore(),
        barcode_resolver=FakeBarcodeResolver(),
        settings=settings,
        verifier=fake_verifier,
    )


@pytest.fixture
def overrides(manager):
    app.dependency_overrides[get_session_manager] = lambda: manager
    app.dependency_overrides[get_current_user] = lambda: ALICE
    yield
    app.dependency_overrides.clear()


@pytest.fixture
async def client(overrides, manager):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    await manager.close_all()


async def _poll(client, path, predicate, timeout: float = 2.0):
    """GET `path` until the JSON body satisfies `predicate`."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        body = (await client.get(path)).json()
        if predicate(body):
            return body
        if loop.time() > deadline:
            raise AssertionError(f"{path} never matched: {body}")
        await asyncio.sleep(0.02)


async def _ready(client):
    return await _poll(client, "/api/session", lambda s: s["current_list_id"] and s["lists"])


async def _add(client, name):
    response = await client.post("/api/items", json={"name": name})
    assert response.status_code == 200
    item_id = response.json()["id"]
    await _poll(client, "/api/items", lambda b: any(i["id"] == item_id for i in b["pending"] + b["purchased"]))
    return item_id


@pytest.mark.integration
@pytest.mark.asyncio
class TestApi:

    async def test_root_and_health(self, client, manager):
        root = (await client.get("/")).json()
        assert root["name"] == "Shared Shopping List API"

        health = (await client.get("/health")).json()
        assert health["status"] == "healthy"
        assert health["store"] == "connected"
        assert health["sessions"] == 0

    async def test_requires_authentication(self, manager):
        app.dependency_overrides[get_session_manager] = lambda: manager
        try:
            async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as http:
                response = await http.get("/api/session")
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 401

    async def test_session_starts_with_default_list(self, client, manager):
        state = await _ready(client)
        assert state["uid"] == ALICE.id
        assert state["current_list_name"] == "My list"
        assert [l["name"] for l in state["lists"]] == ["My list"]
        assert state["lists"][0]["is_owner"] is True
        assert len(manager) == 1

    async def test_item_flow(self, client):
        await _ready(client)
        milk_id = await _add(client, "Milk")

        # Duplicate prompt, then confirm
        response = (await client.post("/api/items", json={"name": "milk "})).json()
        assert response["ok"] is False
        assert response["state"]["duplicate_name"] == "milk "
        confirmed = (await client.post("/api/items/duplicate/confirm")).json()
        assert confirmed["ok"] is True
        assert confirmed["state"]["duplicate_name"] is None

        assert (await client.post(f"/api/items/{milk_id}/increment")).json()["ok"]
        await _poll(client, "/api/items", lambda b: any(i["quantity"] == 2 for i in b["pending"]))

        assert (await client.put(f"/api/items/{milk_id}/price", json={"price": 2.5})).json()["ok"]
        body = await _poll(client, "/api/items", lambda b: any(i["price"] == 2.5 for i in b["pending"]))
        milk = next(i for i in body["pending"] if i["id"] == milk_id)
        assert milk["total_price"] == 5.0

        assert (await client.put(f"/api/items/{milk_id}/toggle")).json()["ok"]
        body = await _poll(client, "/api/items", lambda b: len(b["purchased"]) == 1)
        assert body["purchased"][0]["id"] == milk_id
        assert body["list_name"] == "My list"

    async def test_duplicate_confirm_without_prompt(self, client):
        await _ready(client)
        response = await client.post("/api/items/duplicate/confirm")
        assert response.status_code == 404

    async def test_unknown_item(self, client):
        await _ready(client)
        response = await client.put("/api/items/nope/toggle")
        assert response.status_code == 404

    async def test_invalid_quantity_is_ignored(self, client):
        await _ready(client)
        milk_id = await _add(client, "Milk")
        response = (await client.put(f"/api/items/{milk_id}/quantity", json={"quantity": 0})).json()
        assert response["ok"] is False
        assert response["state"]["error"] is None

    async def test_barcode(self, client):
        await _ready(client)
        response = (await client.post("/api/items/barcode", json={"barcode": "4006381333931"})).json()
        assert response["ok"] is True
        await _poll(client, "/api/items", lambda b: [i["name"] for i in b["pending"]] == ["4006381333931"])

    async def test_photo_upload_and_removal(self, client, manager):
        await _ready(client)
        milk_id = await _add(client, "Milk")

        files = {"file": ("milk.png", b"\x89PNG", "image/png")}
        assert (await client.post(f"/api/items/{milk_id}/image", files=files)).json()["ok"]
        body = await _poll(client, "/api/items", lambda b: b["pending"][0]["image_url"])
        url = body["pending"][0]["image_url"]
        assert url.endswith(".png")

        assert (await client.delete(f"/api/items/{milk_id}/image")).json()["ok"]
        await _poll(client, "/api/items", lambda b: b["pending"][0]["image_url"] is None)
        assert manager.blob_store.deleted == [url]

    async def test_empty_photo_rejected(self, client):
        await _ready(client)
        milk_id = await _add(client, "Milk")
        files = {"file": ("milk.png", b"", "image/png")}
        assert (await client.post(f"/api/items/{milk_id}/image", files=files)).status_code == 400

    async def test_mark_all_purchased_and_delete(self, client):
        await _ready(client)
        milk_id = await _add(client, "Milk")
        await _add(client, "Bread")

        assert (await client.post("/api/items/mark-all-purchased")).json()["ok"]
        await _poll(client, "/api/items", lambda b: not b["pending"] and len(b["purchased"]) == 2)

        assert (await client.delete(f"/api/items/{milk_id}")).json()["ok"]
        await _poll(client, "/api/items", lambda b: len(b["purchased"]) == 1)

    async def test_list_flow(self, client):
        state = await _ready(client)
        default_id = state["current_list_id"]

        party_id = (await client.post("/api/lists", json={"name": "Party"})).json()["id"]
        await _poll(client, "/api/lists", lambda ls: any(l["id"] == party_id for l in ls))

        selected = (await client.post(f"/api/lists/{party_id}/select")).json()
        assert selected["state"]["current_list_id"] == party_id
        assert selected["state"]["current_list_name"] == "Party"

        assert (await client.put(f"/api/lists/{party_id}", json={"name": "BBQ"})).json()["ok"]
        await _poll(client, "/api/session", lambda s: s["current_list_name"] == "BBQ")

        invited = (await client.post(f"/api/lists/{party_id}/members", json={"email": "bob@example.com"})).json()
        assert invited["ok"]
        lists = await _poll(client, "/api/lists?q=bbq", lambda ls: ls and ls[0]["is_shared"])
        assert lists[0]["member_emails"] == ["bob@example.com"]

        assert (await client.delete(f"/api/lists/{party_id}")).json()["ok"]
        await _poll(client, "/api/session", lambda s: s["current_list_id"] == default_id)

    async def test_unknown_list(self, client):
        await _ready(client)
        assert (await client.post("/api/lists/nope/select")).status_code == 404

    async def test_sign_out_closes_session(self, client, manager):
        await _ready(client)
        assert len(manager) == 1
        assert (await client.post("/api/session/sign-out")).json() == {"ok": True}
        assert len(manager) == 0
        assert manager.store.active_subscriptions == 0


@pytest.mark.integration
class TestLiveSocket:

    def test_streams_session_state(self, overrides, manager):
        with TestClient(app) as client:
            with client.websocket_connect("/api/live?token=alice-token") as websocket:
                state = websocket.receive_json()
                for _ in range(50):
                    if state["lists"] and state["current_list_id"]:
                        break
                    state = websocket.receive_json()
                assert state["uid"] == ALICE.id
                assert state["current_list_name"] == "My list"
            client.portal.call(manager.close_all)

    def test_rejects_bad_token(self, overrides, manager):
        with TestClient(app) as client:
            with pytest.raises(WebSocketDisconnect):
                with client.websocket_connect("/api/live?token=forged") as websocket:
                    websocket.receive_json()
