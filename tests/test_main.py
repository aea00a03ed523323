import base64

import numpy as np
import pytest
from fastapi.testclient import TestClient

from clip_image_embed.embedder import ClipImageEmbedder
from clip_image_embed.main import create_app


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


@pytest.fixture
def handle(make_handle):
    return make_handle()


@pytest.fixture
def client(handle):
    emb = ClipImageEmbedder(model_id="clip-vit-b32", session=handle)
    with TestClient(create_app(embedder=emb, api_key="")) as c:
        yield c


@pytest.fixture
def auth_client(handle):
    emb = ClipImageEmbedder(model_id="clip-vit-b32", session=handle)
    with TestClient(create_app(embedder=emb, api_key="secret")) as c:
        yield c


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {
        "ok": True,
        "model": "clip-vit-b32",
        "provider": "cpu",
        "input_name": "input",
        "image_size": 224,
        "profile": "openai-clip",
        "output": "position:-1",
    }


def test_embed(client, image_bytes):
    r = client.post("/embed", json={"image_b64": _b64(image_bytes(100, 50))})
    assert r.status_code == 200
    body = r.json()
    assert body["model"] == "clip-vit-b32"
    assert body["dim"] == 512
    assert body["norm"] is False
    assert body["embedding"] == list(np.arange(512, dtype=float))


def test_embed_data_url_and_norm(client, image_bytes):
    url = "data:image/jpeg;base64," + _b64(image_bytes(64, 64, fmt="JPEG"))
    r = client.post("/embed", json={"image_b64": url, "norm": True, "model": "clip-vit-b32"})
    assert r.status_code == 200
    body = r.json()
    assert body["norm"] is True
    assert np.linalg.norm(body["embedding"]) == pytest.approx(1.0, abs=1e-5)


def test_embed_unknown_model(client, image_bytes):
    r = client.post("/embed", json={"image_b64": _b64(image_bytes()), "model": "siglip"})
    assert r.status_code == 400
    assert "Unknown model" in r.json()["detail"]


@pytest.mark.parametrize("payload", ["%%%not-base64%%%", _b64(b"not an image"), ""])
def test_embed_bad_image(client, handle, payload):
    r = client.post("/embed", json={"image_b64": payload})
    assert r.status_code == 400
    assert handle.calls == []


def test_embed_inference_error(make_handle, image_bytes):
    emb = ClipImageEmbedder(model_id="clip", session=make_handle(error=RuntimeError("engine down")))
    with TestClient(create_app(embedder=emb, api_key="")) as c:
        r = c.post("/embed", json={"image_b64": _b64(image_bytes())})
    assert r.status_code == 502
    assert "engine down" in r.json()["detail"]


def test_embed_shape_mismatch(make_handle, image_bytes, monkeypatch):
    from clip_image_embed import embedder as embedder_mod

    monkeypatch.setattr(embedder_mod, "preprocess", lambda raw, profile, binding: np.zeros((1, 3, 8, 8), np.float32))
    emb = ClipImageEmbedder(model_id="clip", session=make_handle())
    with TestClient(create_app(embedder=emb, api_key="")) as c:
        r = c.post("/embed", json={"image_b64": _b64(image_bytes())})
    assert r.status_code == 500


def test_embed_requires_token(auth_client, image_bytes):
    payload = {"image_b64": _b64(image_bytes())}
    assert auth_client.post("/embed", json=payload).status_code == 401
    r = auth_client.post("/embed", json=payload, headers={"Authorization": "Bearer wrong"})
    assert r.status_code == 403
    r = auth_client.post("/embed", json=payload, headers={"Authorization": "Bearer secret"})
    assert r.status_code == 200


def test_served_model_name(handle, image_bytes):
    emb = ClipImageEmbedder(model_id="clip-image-vit-32-float32", session=handle)
    with TestClient(create_app(embedder=emb, api_key="", served_model_name="clip-embed")) as c:
        assert c.get("/healthz").json()["model"] == "clip-embed"
        r = c.post("/embed", json={"image_b64": _b64(image_bytes()), "model": "clip-embed"})
    assert r.status_code == 200
    assert r.json()["model"] == "clip-embed"


def test_metrics(client, image_bytes):
    client.post("/embed", json={"image_b64": _b64(image_bytes())})
    client.post("/embed", json={"image_b64": _b64(b"junk")})
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "clip_image_requests_total" in r.text
    assert "clip_image_embed_seconds" in r.text
    assert 'clip_image_errors_total{stage="decode"}' in r.text


def test_lifespan_owns_embedder(monkeypatch, make_handle):
    handle = make_handle()
    monkeypatch.setattr(
        ClipImageEmbedder, "from_env", classmethod(lambda cls: cls(model_id="from-env", session=handle))
    )
    with TestClient(create_app(api_key="")) as c:
        assert c.get("/healthz").json()["model"] == "from-env"
    assert handle.closed


def test_lifespan_leaves_injected_embedder_open(handle):
    emb = ClipImageEmbedder(model_id="clip", session=handle)
    with TestClient(create_app(embedder=emb, api_key="")):
        pass
    assert not handle.closed
