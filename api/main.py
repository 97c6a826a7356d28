from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from api.explanation import AnyExplanation, Explanation, LegacyExplanation
from api.fallback import synthesize
from api.parsing import parse_response
from api.prompts import SYSTEM_PROMPT, build_prompt
from api.stats import VALID_RANGES
from market.snapshot import MarketSnapshot
from utils.llm_client import LLMClientError, TextProvider, get_providers, select_provider

logger = logging.getLogger(__name__)

_LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
_LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "800"))

SOURCE_PROVIDER = "provider"
SOURCE_LEGACY = "legacy"
SOURCE_FALLBACK = "fallback"


class RequestValidationError(ValueError):
    """Bad input on an explanation request; maps to HTTP 400."""


@dataclass
class ExplainResult:
    explanation: AnyExplanation
    source: str
    provider: Optional[str] = None


def validate_request(coin_id: Optional[str], range_: Optional[str]) -> Tuple[str, str]:
    coin = (coin_id or "").strip() if isinstance(coin_id, str) else ""
    if not coin:
        raise RequestValidationError("coinId is required")
    rng = range_ if range_ is not None else "24h"
    if rng not in VALID_RANGES:
        raise RequestValidationError(f"Invalid range. Valid options are: {', '.join(VALID_RANGES)}")
    return coin, rng


def generate_explanation(
    coin_id: str,
    range_: str,
    snapshot: MarketSnapshot,
    question: Optional[str] = "",
    providers: Optional[Sequence[TextProvider]] = None,
    rng: Optional[random.Random] = None,
) -> ExplainResult:
    """Provider reply routed through the parser, or the deterministic fallback. Never raises."""
    candidates = get_providers() if providers is None else providers
    provider = select_provider(candidates)
    if provider is None:
        logger.info("No text provider configured; synthesizing explanation for %s/%s", coin_id, range_)
        return ExplainResult(synthesize(coin_id, range_, snapshot, question, rng=rng), SOURCE_FALLBACK)

    try:
        prompt = build_prompt(coin_id, range_, snapshot, question)
        reply = provider.generate(
            prompt,
            system=SYSTEM_PROMPT,
            temperature=_LLM_TEMPERATURE,
            max_tokens=_LLM_MAX_TOKENS,
        )
    except LLMClientError as exc:
        logger.warning("Provider %s failed, using fallback: %s", provider.name, exc)
        return ExplainResult(synthesize(coin_id, range_, snapshot, question, rng=rng), SOURCE_FALLBACK)
    except Exception:  # noqa: BLE001 - the caller must always get an explanation
        logger.exception("Unexpected error from provider %s, using fallback", provider.name)
        return ExplainResult(synthesize(coin_id, range_, snapshot, question, rng=rng), SOURCE_FALLBACK)

    parsed = parse_response(reply.text)
    if isinstance(parsed, LegacyExplanation):
        logger.info("Provider %s reply had no section headings; returning legacy shape", provider.name)
        return ExplainResult(parsed, SOURCE_LEGACY, provider.name)
    return ExplainResult(parsed, SOURCE_PROVIDER, provider.name)


def explain_market_move(
    coin_id: str,
    range_: str,
    snapshot: MarketSnapshot,
    question: Optional[str] = "",
    providers: Optional[Sequence[TextProvider]] = None,
    rng: Optional[random.Random] = None,
) -> AnyExplanation:
    return generate_explanation(coin_id, range_, snapshot, question, providers=providers, rng=rng).explanation


__all__ = [
    "Explanation",
    "LegacyExplanation",
    "ExplainResult",
    "RequestValidationError",
    "explain_market_move",
    "generate_explanation",
    "validate_request",
]
