import threading

import pytest
from openpyxl import load_workbook

from web import app as web_app


@pytest.fixture
def client(monkeypatch, tmp_path, no_llm_env, btc_snapshot):
    monkeypatch.setattr(web_app, "LOG_PATH", tmp_path / "explain_log.xlsx")
    fetched = []

    def fake_market_data(coin_id, range_):
        fetched.append((coin_id, range_))
        return btc_snapshot

    monkeypatch.setattr(web_app, "get_market_data", fake_market_data)
    web_app.app.config["TESTING"] = True
    with web_app.app.test_client() as c:
        c.fetched = fetched
        yield c


@pytest.mark.parametrize("path", ["/api/explain-move", "/explain-move"])
def test_explain_move_fallback_response(client, path):
    resp = client.post(path, json={"coinId": "bitcoin", "range": "24h"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["coinId"] == "bitcoin"
    assert body["range"] == "24h"
    assert body["timestamp"].endswith("Z")
    expl = body["explanation"]
    assert set(expl) == {"whatHappened", "possibleDrivers", "marketContext", "whatToWatch", "disclaimer"}
    assert "rallied" in expl["whatHappened"]


def test_invalid_range_is_rejected_before_any_work(client, monkeypatch):
    def must_not_run(*args, **kwargs):
        raise AssertionError("generator must not be invoked")

    monkeypatch.setattr(web_app, "generate_explanation", must_not_run)
    resp = client.post("/api/explain-move", json={"coinId": "bitcoin", "range": "1h"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid range. Valid options are: 24h, 7d, 30d, 90d"
    assert client.fetched == []


def test_missing_coin_id_is_rejected(client):
    resp = client.post("/api/explain-move", json={"range": "7d"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "coinId is required"


@pytest.mark.parametrize("body", [["bitcoin"], "bitcoin", 42])
def test_non_object_body_is_rejected(client, body):
    resp = client.post("/api/explain-move", json=body)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "coinId is required"
    assert client.fetched == []


def test_snapshot_failure_is_a_server_error(client, monkeypatch):
    def broken(coin_id, range_):
        raise RuntimeError("coingecko exploded")

    monkeypatch.setattr(web_app, "get_market_data", broken)
    resp = client.post("/api/explain-move", json={"coinId": "bitcoin", "range": "7d"})
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Failed to generate explanation", "message": "coingecko exploded"}


def test_requests_are_logged_to_workbook(client, tmp_path):
    client.post("/api/explain-move", json={"coinId": "bitcoin", "range": "7d", "question": "why?"})
    client.post("/api/explain-move", json={"coinId": "bitcoin", "range": "30d"})
    ws = load_workbook(tmp_path / "explain_log.xlsx").active
    rows = list(ws.iter_rows(values_only=True))
    assert rows[0] == ("timestamp", "coin_id", "range", "question", "source", "provider")
    assert rows[1][1:5] == ("bitcoin", "7d", "why?", "fallback")
    assert len(rows) == 3


def test_concurrent_log_writes_keep_every_row(client, tmp_path):
    threads = [
        threading.Thread(target=web_app.log_explain_event, args=("bitcoin", "7d", f"q{i}", "fallback", None))
        for i in range(8)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    rows = list(load_workbook(tmp_path / "explain_log.xlsx").active.iter_rows(values_only=True))
    assert len(rows) == 9
    assert sorted(r[3] for r in rows[1:]) == sorted(f"q{i}" for i in range(8))


def test_market_data_routes(client):
    resp = client.get("/api/market-data?coinId=bitcoin&range=7d")
    assert resp.status_code == 200
    assert resp.get_json()["coin"]["id"] == "bitcoin"
    assert client.get("/api/market-data?range=2d").status_code == 400

    batch = client.get("/api/market-data-batch?coinIds=bitcoin,ethereum&range=24h")
    assert len(batch.get_json()) == 2
    assert client.fetched[-2:] == [("bitcoin", "24h"), ("ethereum", "24h")]
    assert client.get("/api/market-data-batch").status_code == 400


def test_health(client):
    body = client.get("/health").get_json()
    assert body["status"] == "OK"
    assert body["llmConfigured"] is False
