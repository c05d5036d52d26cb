"""HTTP surface of the closet API, wired to in-memory fakes."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from closet.core.cache import TieredCache
from closet.core.gemini import RetryingGeminiCaller
from closet.core.image_inputs import load_image_input
from closet.core.rate_limit import RateLimitConfig, RateLimiter
from closet.main import app
from closet.routers.closet.dependencies import (
    get_closet_service,
    get_database,
    get_orchestrator,
)
from closet.services.closet_service import ClosetService
from closet.services.generation_service import GenerationOrchestrator

from conftest import (
    GeminiStub,
    SleepRecorder,
    image_response,
    make_image_loader,
    text_response,
)


class Wiring:
    def __init__(self, database, storage, clock) -> None:
        self.database = database
        self.storage = storage
        self.stub = GeminiStub(image_response())
        self.limiter = RateLimiter(RateLimitConfig(), clock=clock)
        self.orchestrator = GenerationOrchestrator(
            caller=RetryingGeminiCaller(
                api_key="test-key", sleep=SleepRecorder(), transport=self.stub.transport
            ),
            cache=TieredCache(database, storage),
            rate_limiter=self.limiter,
            image_loader=make_image_loader(),
            body_image_path="assets/body.png",
        )
        self.service = ClosetService(database, storage)


@pytest.fixture
def wiring(database, storage, clock) -> Wiring:
    return Wiring(database, storage, clock)


@pytest.fixture
def client(wiring):
    app.dependency_overrides[get_orchestrator] = lambda: wiring.orchestrator
    app.dependency_overrides[get_closet_service] = lambda: wiring.service
    app.dependency_overrides[get_database] = lambda: wiring.database
    yield TestClient(app)
    app.dependency_overrides.clear()


def _add_item(client, name, category):
    response = client.post(
        "/api/v1/items",
        data={"name": name, "category": category},
        files={"image": (f"{name}.png", b"png-bytes", "image/png")},
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client) -> None:
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_items_lifecycle(client, fake_supabase) -> None:
    tee = _add_item(client, "tee", "top")
    _add_item(client, "jeans", "bottom")

    tops = client.get("/api/v1/items", params={"category": "top"}).json()
    assert [item["name"] for item in tops] == ["tee"]

    assert client.delete(f"/api/v1/items/{tee['id']}").json() == {"success": True, "id": tee["id"]}
    assert client.delete(f"/api/v1/items/{tee['id']}").status_code == 404
    assert len(fake_supabase.storage.removed) == 1


def test_items_reject_unknown_category(client) -> None:
    assert client.get("/api/v1/items", params={"category": "shoes"}).status_code == 422


def test_select_by_item_ids(client, wiring, fake_supabase) -> None:
    top = _add_item(client, "tee", "top")
    bottom = _add_item(client, "jeans", "bottom")

    response = client.post(
        "/api/v1/generate/select", json={"top_id": top["id"], "bottom_id": bottom["id"]}
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["success"] is True
    assert body["source"] == "select"
    assert body["image_url"].startswith("https://cdn.test/")
    assert len(fake_supabase.rows("generated_outfits")) == 1

    again = client.post(
        "/api/v1/generate/select", json={"top_id": top["id"], "bottom_id": bottom["id"]}
    )
    assert again.json()["cached"] is True
    assert len(wiring.stub.requests) == 1


def test_select_validates_items(client) -> None:
    top = _add_item(client, "tee", "top")
    other_top = _add_item(client, "shirt", "top")

    wrong = client.post(
        "/api/v1/generate/select", json={"top_id": top["id"], "bottom_id": other_top["id"]}
    )
    assert wrong.status_code == 400

    missing = client.post(
        "/api/v1/generate/select", json={"top_id": top["id"], "bottom_id": "nope"}
    )
    assert missing.status_code == 404

    assert client.post("/api/v1/generate/select", json={"top_id": top["id"]}).status_code == 422


def test_select_by_urls(client) -> None:
    response = client.post(
        "/api/v1/generate/select",
        json={"top_image_url": "https://cdn.test/a.png", "bottom_image_url": "https://cdn.test/b.png"},
    )
    assert response.status_code == 200
    assert response.json()["image_url"].startswith("data:image/png;base64,")


def test_missing_api_key_is_503(client, wiring) -> None:
    wiring.orchestrator.caller.api_key = None

    response = client.post("/api/v1/generate/nano", json={"occasion": "gala"})

    assert response.status_code == 503
    assert "GEMINI_KEY" in response.json()["detail"]


def test_rate_limited_is_429_with_retry_after(client) -> None:
    assert client.post("/api/v1/generate/nano", json={"occasion": "gala"}).status_code == 200

    response = client.post("/api/v1/generate/nano", json={"occasion": "picnic"})

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "2"
    assert "cooldown" in response.json()["detail"]


def test_generation_in_progress_is_409(client, wiring) -> None:
    wiring.orchestrator._in_flight = True

    response = client.post("/api/v1/generate/nano", json={"occasion": "gala"})

    assert response.status_code == 409
    assert wiring.stub.requests == []


def test_model_refusal_is_502(client, wiring) -> None:
    wiring.stub.responses = [text_response("blocked by safety filter")]

    response = client.post("/api/v1/generate/nano", json={"occasion": "gala"})

    assert response.status_code == 502
    assert "blocked by safety filter" in response.json()["detail"]


def test_empty_occasion_is_422(client) -> None:
    assert client.post("/api/v1/generate/nano", json={"occasion": ""}).status_code == 422


def test_transfer_upload(client, fake_supabase) -> None:
    response = client.post(
        "/api/v1/generate/transfer",
        files={"inspiration_image": ("street.jpg", b"jpeg-bytes", "image/jpeg")},
    )

    assert response.status_code == 200, response.text
    assert response.json()["source"] == "transfer"
    assert fake_supabase.rows("generated_outfits")[0]["generator_source"] == "transfer"


def test_outfits_list_and_like(client) -> None:
    client.post("/api/v1/generate/nano", json={"occasion": "gala"})

    outfits = client.get("/api/v1/outfits").json()
    assert len(outfits) == 1
    assert outfits[0]["is_liked"] is False

    liked = client.patch(f"/api/v1/outfits/{outfits[0]['id']}/like", json={"is_liked": True})
    assert liked.status_code == 200
    assert liked.json()["is_liked"] is True

    assert len(client.get("/api/v1/outfits", params={"liked_only": True}).json()) == 1
    assert client.patch("/api/v1/outfits/nope/like", json={"is_liked": True}).status_code == 404


def test_rate_limit_status_and_reconfigure(client, clock) -> None:
    status = client.get("/api/v1/ratelimit").json()
    assert status["allowed"] is True
    assert status["calls_in_window"] == 0
    assert status["max_calls"] == 10

    client.post("/api/v1/generate/nano", json={"occasion": "gala"})
    status = client.get("/api/v1/ratelimit").json()
    assert status["allowed"] is False
    assert status["reason"] == "cooldown"
    assert status["next_available_at"] == clock.now + 2000

    updated = client.put("/api/v1/ratelimit", json={"cooldown_ms": 0, "max_calls": 5})
    assert updated.status_code == 200
    assert updated.json()["allowed"] is True
    assert updated.json()["max_calls"] == 5
    assert updated.json()["window_ms"] == 60000

    assert client.put("/api/v1/ratelimit", json={"max_calls": 0}).status_code == 422


def test_cache_status_and_clear(client) -> None:
    client.post("/api/v1/generate/nano", json={"occasion": "gala"})
    assert client.get("/api/v1/cache").json() == {"size": 1, "is_generating": False}

    assert client.delete("/api/v1/cache").json()["size"] == 0
    assert client.get("/api/v1/cache").json()["size"] == 0


def test_select_rejects_server_file_paths(client, wiring, tmp_path) -> None:
    secret = tmp_path / "secret.env"
    secret.write_bytes(b"SUPABASE_SERVICE_KEY=topsecret")
    body = tmp_path / "body.png"
    body.write_bytes(b"png-bytes")
    wiring.orchestrator._load_image = load_image_input
    wiring.orchestrator.body_image_path = str(body)

    response = client.post(
        "/api/v1/generate/select",
        json={"top_image_url": str(secret), "bottom_image_url": str(secret)},
    )

    assert response.status_code == 400
    assert wiring.stub.requests == []
    assert wiring.limiter.get_status()["calls_in_window"] == 0
