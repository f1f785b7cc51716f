# Import section
import sys
import time
import types

from fastapi import FastAPI, Depends, Request
from fastapi.testclient import TestClient
from parc_paiements.utils.rate_limit import optional_rate_limit, rate_limit_health_info


def _make_app(times=2, seconds=60):
    app = FastAPI()

    @app.post("/intent", dependencies=[Depends(optional_rate_limit(times, seconds))])
    def intent():
        return {"ok": True}

    @app.post("/intentA", dependencies=[Depends(optional_rate_limit(times, seconds))])
    def intent_a():
        return {"ok": True}

    @app.post("/intentB", dependencies=[Depends(optional_rate_limit(times, seconds))])
    def intent_b():
        return {"ok": True}

    @app.get("/rl_info")
    def rl_info(request: Request):
        return rate_limit_health_info(request)

    return app


def test_rate_limit_fallback_blocks_after_limit(monkeypatch):
    app = _make_app(times=2, seconds=60)
    client = TestClient(app)
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")

    r1 = client.post("/intent")
    r2 = client.post("/intent")
    r3 = client.post("/intent")

    assert r1.status_code == 200
    assert r2.status_code == 200
    assert r3.status_code == 429
    assert "Trop de tentatives" in r3.json()["detail"]


def test_rate_limit_is_per_path(monkeypatch):
    app = _make_app(times=2, seconds=60)
    client = TestClient(app)
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")

    # path A: 2 OK, 3e bloque
    assert client.post("/intentA").status_code == 200
    assert client.post("/intentA").status_code == 200
    assert client.post("/intentA").status_code == 429

    # path B: indépendant de A
    assert client.post("/intentB").status_code == 200
    assert client.post("/intentB").status_code == 200
    assert client.post("/intentB").status_code == 429


def test_rate_limit_resets_after_window_sleep(monkeypatch):
    # Petite fenêtre pour éviter monkeypatch time
    app = _make_app(times=2, seconds=1)
    client = TestClient(app)
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")

    assert client.post("/intent").status_code == 200
    assert client.post("/intent").status_code == 200
    assert client.post("/intent").status_code == 429

    # Attendre > 1s pour vider la fenêtre
    time.sleep(1.1)
    assert client.post("/intent").status_code == 200


def test_rate_limit_fallback_purges_expired_keys(monkeypatch):
    app = _make_app(times=2, seconds=1)
    client = TestClient(app)
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")

    assert client.post("/intentA").status_code == 200
    assert client.post("/intentB").status_code == 200
    assert len(app.state._rl_store) == 2

    # Fenêtre écoulée: les clés de /intentA et /intentB disparaissent au prochain appel
    time.sleep(1.1)
    assert client.post("/intent").status_code == 200
    assert list(app.state._rl_store) == ["ip:testclient:/intent"]


def test_rate_limit_disabled_flag_bypasses_limit(monkeypatch):
    app = _make_app(times=2, seconds=60)
    monkeypatch.delenv("LOCAL_RATE_LIMIT_FALLBACK", raising=False)
    client = TestClient(app)
    app.state.rate_limit_enabled = False

    for _ in range(4):
        assert client.post("/intent").status_code == 200


def test_rate_limit_without_redis_does_not_block(monkeypatch):
    # Limiter non initialisé (Redis absent): jamais de 429
    app = _make_app(times=1, seconds=60)
    monkeypatch.delenv("LOCAL_RATE_LIMIT_FALLBACK", raising=False)
    client = TestClient(app)

    assert client.post("/intent").status_code == 200
    assert client.post("/intent").status_code == 200


def test_rate_limit_health_info(monkeypatch):
    app = _make_app()
    client = TestClient(app)

    # Limiter non initialisé -> ready False, backend None
    app.state.rate_limit_enabled = True
    info = client.get("/rl_info").json()
    assert info["enabled"] is True
    assert info["ready"] is False
    assert info["backend"] is None

    # Injecter un faux module fastapi_limiter avec redis prêt
    dummy = types.ModuleType("fastapi_limiter")

    class FastAPILimiter:
        redis = object()

    dummy.FastAPILimiter = FastAPILimiter
    monkeypatch.setitem(sys.modules, "fastapi_limiter", dummy)

    # Définir une URL redis pour les détails
    monkeypatch.setenv("RATE_LIMIT_REDIS_URL", "redis://localhost:6379/0")
    info2 = client.get("/rl_info").json()
    assert info2["enabled"] is True
    assert info2["ready"] is True
    assert info2["backend"] == "redis"
    assert info2["redis"]["scheme"] == "redis"
    assert info2["redis"]["host"] == "localhost"
    assert info2["redis"]["port"] == 6379
