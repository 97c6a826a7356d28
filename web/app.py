from __future__ import annotations
from flask import Flask, jsonify, request
from flask_cors import CORS
from dotenv import load_dotenv
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from openpyxl import Workbook, load_workbook

load_dotenv()

from api.main import RequestValidationError, generate_explanation, validate_request
from api.stats import VALID_RANGES
from market.coingecko import get_coins_list, get_market_data
from utils.llm_client import has_client

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app, origins=os.getenv("CLIENT_URL", "http://localhost:5173"), supports_credentials=True)
_LOG_SETTING = os.getenv("EXPLAIN_LOG_PATH", "logs/explain_log.xlsx")
LOG_PATH: Optional[Path] = Path(_LOG_SETTING) if _LOG_SETTING else None
_log_lock = threading.Lock()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def log_explain_event(coin_id: str, range_: str, question: str, source: str, provider: Optional[str]) -> None:
    if LOG_PATH is None:
        return
    try:
        with _log_lock:
            _append_log_row(coin_id, range_, question, source, provider)
    except Exception:
        # Never let logging errors break the explain flow
        logger.exception("Failed to append to explain log %s", LOG_PATH)


def _append_log_row(coin_id, range_, question, source, provider):
    LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
    if LOG_PATH.exists():
        wb = load_workbook(LOG_PATH)
        ws = wb.active
    else:
        wb = Workbook()
        ws = wb.active
        ws.append(["timestamp", "coin_id", "range", "question", "source", "provider"])
    ws.append([
        _now_iso(),
        coin_id,
        range_,
        question,
        source,
        provider or "",
    ])
    wb.save(LOG_PATH)


def _invalid_range():
    return jsonify({"error": f"Invalid range. Valid options are: {', '.join(VALID_RANGES)}"}), 400


@app.get("/health")
def health():
    return jsonify({"status": "OK", "llmConfigured": has_client(), "timestamp": _now_iso()})


@app.post("/api/explain-move")
@app.post("/explain-move")
def explain_move():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    try:
        coin_id, range_ = validate_request(data.get("coinId"), data.get("range"))
    except RequestValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    question = data.get("question") or ""
    if not isinstance(question, str):
        question = str(question)

    try:
        snapshot = get_market_data(coin_id, range_)
    except Exception as e:
        logger.exception("Market data unavailable for %s/%s", coin_id, range_)
        return jsonify({"error": "Failed to generate explanation", "message": str(e)}), 500

    result = generate_explanation(coin_id, range_, snapshot, question)
    logger.info("Explained %s/%s via %s", coin_id, range_, result.provider or result.source)
    log_explain_event(coin_id, range_, question, result.source, result.provider)
    return jsonify({
        "coinId": coin_id,
        "range": range_,
        "explanation": result.explanation.to_dict(),
        "timestamp": _now_iso(),
    })


@app.get("/api/market-data")
def api_market_data():
    coin_id = request.args.get("coinId", "bitcoin")
    range_ = request.args.get("range", "7d")
    if range_ not in VALID_RANGES:
        return _invalid_range()
    try:
        snapshot = get_market_data(coin_id, range_)
    except Exception as e:
        logger.exception("Market data error for %s/%s", coin_id, range_)
        return jsonify({"error": "Failed to fetch market data", "message": str(e)}), 500
    return jsonify(snapshot.to_dict())


@app.get("/api/market-data-batch")
def api_market_data_batch():
    coin_ids = request.args.get("coinIds")
    range_ = request.args.get("range", "24h")
    if not coin_ids:
        return jsonify({"error": "coinIds parameter is required"}), 400
    if range_ not in VALID_RANGES:
        return _invalid_range()
    ids = [c.strip() for c in coin_ids.split(",") if c.strip()]
    try:
        snapshots = [get_market_data(coin_id, range_).to_dict() for coin_id in ids]
    except Exception as e:
        logger.exception("Batch market data error")
        return jsonify({"error": "Failed to fetch batch market data", "message": str(e)}), 500
    return jsonify(snapshots)


@app.get("/api/coins-list")
def api_coins_list():
    try:
        coins = get_coins_list()
    except Exception as e:
        logger.exception("Coins list error")
        return jsonify({"error": "Failed to fetch coins list", "message": str(e)}), 500
    return jsonify(coins)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")), debug=True)
