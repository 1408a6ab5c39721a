"""Deterministic signal detection: regex/keyword layer run before the LLM extractor.

Nothing here calls a model. Results are partial dicts in the same shape as the
extraction schemas so handlers can combine both sources before merging.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from advisor.orchestrator.completion import allocation_is_complete
from advisor.orchestrator.schemas import ASSET_ALIASES, normalize_asset_class, to_number
from advisor.orchestrator.types import ASSET_CLASSES

_AFFIRMATIVE = frozenset({
    "yes", "y", "yeah", "yep", "sure", "ok", "okay", "start", "begin", "analyze",
    "analyse", "continue", "go", "let's go", "lets go", "ready",
})
_NEGATIVE = frozenset({"no", "nope", "not now", "later", "no thanks"})
_SKIP = frozenset({"skip", "no", "none", "nope", "no thanks", "not now", "pass", "continue"})

_NO_HOLDINGS_PATTERNS = (
    r"\bhaven'?t (?:yet )?invested\b",
    r"\bhave not (?:yet )?invested\b",
    r"\bno investments?\b",
    r"\bnot invested\b",
    r"\bnothing invested\b",
    r"\bdon'?t have (?:any )?(?:investments|a portfolio|holdings)\b",
    r"\bno (?:portfolio|holdings)\b",
    r"\bnew investor\b",
    r"\bstarting from (?:zero|scratch)\b",
)
_DEFAULT_REQUEST_PATTERNS = (
    r"\bsuggest\b",
    r"\brecommend\b",
    r"\bpropose\b",
    r"\bdefault (?:allocation|portfolio|mix)\b",
    r"\byou (?:choose|pick|decide)\b",
    r"\bnot sure\b.*\ballocat",
)
_RESTART_PATTERNS = (
    r"^\s*restart\s*$",
    r"\bstart (?:over|again|a new analysis|new analysis)\b",
    r"^\s*reset\s*$",
)

_GOAL_KEYWORDS = {
    "growth": ("growth", "grow my", "grow wealth", "appreciation"),
    "income": ("income", "dividend", "cash flow"),
    "balanced": ("balanced", "balance between"),
    "preservation": ("preservation", "preserve", "protect my", "safety"),
    "lump_sum": ("lump sum", "lump-sum", "down payment", "buy a house"),
}
_RISK_KEYWORDS = {
    "high": ("high risk", "aggressive", "risk tolerance is high", "high risk tolerance"),
    "medium": ("medium risk", "moderate risk", "medium risk tolerance"),
    "low": ("low risk", "conservative", "risk averse", "risk-averse", "low risk tolerance"),
}
_LIQUIDITY_KEYWORDS = {
    "high": ("high liquidity", "need access", "need the money soon"),
    "medium": ("medium liquidity", "moderate liquidity", "some liquidity"),
    "low": ("low liquidity", "won't need", "don't need access", "no liquidity"),
}

_EMAIL_SCAN_RE = re.compile(r"[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+")
_EMAILISH_RE = re.compile(r"\S+@\S*|\S+\s+at\s+\S+\s+dot\s+\S+", re.IGNORECASE)
_CURRENCY_RE = re.compile(r"\b([A-Z]{3})\b")
_CURRENCY_WORDS = {
    "dollar": "USD", "dollars": "USD", "usd": "USD", "$": "USD",
    "euro": "EUR", "euros": "EUR", "eur": "EUR", "€": "EUR",
    "pound": "GBP", "pounds": "GBP", "sterling": "GBP", "gbp": "GBP", "£": "GBP",
    "yen": "JPY", "jpy": "JPY",
    "franc": "CHF", "francs": "CHF", "chf": "CHF",
    "cad": "CAD", "aud": "AUD", "inr": "INR", "rupee": "INR", "rupees": "INR",
}
_KNOWN_ISO = frozenset({
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD", "SEK", "NOK", "DKK",
    "INR", "CNY", "HKD", "SGD", "BRL", "MXN", "ZAR", "TRY", "PLN", "KRW",
})

_ASSET_WORDS = sorted(
    list(ASSET_CLASSES) + [k for k in ASSET_ALIASES] + ["real estate"],
    key=len,
    reverse=True,
)
_ASSET_ALT = "|".join(re.escape(w) for w in _ASSET_WORDS)
_PCT_BEFORE_RE = re.compile(rf"(\d+(?:\.\d+)?)\s*%\s*(?:in\s+|of\s+|to\s+)?({_ASSET_ALT})\b", re.IGNORECASE)
_PCT_AFTER_RE = re.compile(rf"\b({_ASSET_ALT})\s*[:=\-]?\s*(?:at\s+)?(\d+(?:\.\d+)?)\s*%", re.IGNORECASE)

_AMOUNT_RE = re.compile(
    r"(?:[$€£]\s*)?(\d{1,3}(?:,\d{3})+|\d+(?:\.\d+)?)\s*(k|m|thousand|million)?\b(?!\s*(?:%|years?|yrs?))",
    re.IGNORECASE,
)
_HORIZON_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:years?|yrs?)\b", re.IGNORECASE)


def _normalized(text: str) -> str:
    return re.sub(r"\s+", " ", text.strip().lower()).strip(" .!?")


def _any_pattern(patterns: tuple, text: str) -> bool:
    return any(re.search(p, text, re.IGNORECASE) for p in patterns)


def is_affirmative(text: str) -> bool:
    norm = _normalized(text)
    if norm in _AFFIRMATIVE:
        return True
    first = norm.split(" ", 1)[0].strip(",") if norm else ""
    return first in _AFFIRMATIVE and not any(n in norm for n in ("not", "don't"))


def is_negative(text: str) -> bool:
    return _normalized(text) in _NEGATIVE


def is_skip(text: str) -> bool:
    return _normalized(text) in _SKIP


def is_restart(text: str) -> bool:
    return _any_pattern(_RESTART_PATTERNS, text.lower())


def detects_no_holdings(text: str) -> bool:
    return _any_pattern(_NO_HOLDINGS_PATTERNS, text.lower())


def detects_default_request(text: str) -> bool:
    return _any_pattern(_DEFAULT_REQUEST_PATTERNS, text.lower())


def find_email(text: str) -> Optional[str]:
    """First syntactically plausible email in *text* (lower-cased), or None."""
    for candidate in _EMAIL_SCAN_RE.findall(text):
        return candidate.strip(".,;<>").lower()
    return None


def find_emailish(text: str) -> Optional[str]:
    """Something the user probably meant as an email address (for corrective prompts)."""
    match = _EMAILISH_RE.search(text)
    return match.group(0).strip(".,;<>") if match else None


def find_currency(text: str) -> Optional[str]:
    for code in _CURRENCY_RE.findall(text):
        if code in _KNOWN_ISO:
            return code
    lowered = text.lower()
    for word, code in _CURRENCY_WORDS.items():
        if len(word) == 1:
            if word in lowered:
                return code
        elif re.search(rf"\b{re.escape(word)}\b", lowered):
            return code
    return None


def find_allocation(text: str) -> Dict[str, float]:
    """Percent-per-asset-class mentions, e.g. "60% stocks, bonds: 30%".

    Both phrasings may appear in one message. A trailing-percent match is
    dropped when its number already belongs to a leading-percent match, so
    "60% stocks 30% bonds" does not also read as "stocks 30%".
    """
    allocation: Dict[str, float] = {}
    taken: List[Tuple[int, int]] = []
    for match in _PCT_BEFORE_RE.finditer(text):
        asset = normalize_asset_class(match.group(2))
        if asset:
            allocation[asset] = allocation.get(asset, 0.0) + float(match.group(1))
            taken.append(match.span())
    for match in _PCT_AFTER_RE.finditer(text):
        start, end = match.span(2)
        if any(start < t_end and end > t_start for t_start, t_end in taken):
            continue
        asset = normalize_asset_class(match.group(1))
        if asset and asset not in allocation:
            allocation[asset] = float(match.group(2))
    return allocation


def find_goal_type(text: str) -> Optional[str]:
    lowered = text.lower()
    for goal, words in _GOAL_KEYWORDS.items():
        if any(w in lowered for w in words):
            return goal
    return None


def _find_level(text: str, table: Dict[str, tuple]) -> Optional[str]:
    lowered = text.lower()
    for level, words in table.items():
        if any(w in lowered for w in words):
            return level
    return None


def find_horizon(text: str) -> Optional[float]:
    match = _HORIZON_RE.search(text)
    return float(match.group(1)) if match else None


def find_amount(text: str) -> Optional[float]:
    """Largest money-like number that is not a percent or a year count."""
    best: Optional[float] = None
    for digits, suffix in _AMOUNT_RE.findall(text):
        number = to_number(f"{digits}{suffix or ''}")
        if number is None or number < 1000:
            continue
        if best is None or number > best:
            best = number
    return best


def goals_signals(text: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    goal = find_goal_type(text)
    if goal:
        out["goal_type"] = goal
    amount = find_amount(text)
    if amount:
        out["target_amount"] = amount
    horizon = find_horizon(text)
    if horizon:
        out["horizon_years"] = horizon
    risk = _find_level(text, _RISK_KEYWORDS)
    if risk:
        out["risk_tolerance"] = risk
    liquidity = _find_level(text, _LIQUIDITY_KEYWORDS)
    if liquidity:
        out["liquidity_need"] = liquidity
    return out


def portfolio_signals(text: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    allocation = find_allocation(text)
    if allocation:
        out["allocation"] = allocation
    elif detects_no_holdings(text):
        out["no_holdings_yet"] = True
    currency = find_currency(text)
    if currency:
        out["currency"] = currency
    if not allocation and detects_default_request(text):
        out["suggest_default"] = True
    return out


def cta_signals(text: str) -> Dict[str, Any]:
    lowered = text.lower()
    if is_restart(text):
        return {"restart": True}
    if "book_call" in lowered or re.search(r"\b(call|advisor|adviser|meeting|talk)\b", lowered):
        return {"cta_choice": "book_call"}
    if "email_report" in lowered or re.search(r"\b(report|email me|send)\b", lowered):
        return {"cta_choice": "email_report"}
    return {}


def _combine_allocation(llm: Mapping[str, float], deterministic: Mapping[str, float]) -> Dict[str, float]:
    if allocation_is_complete(deterministic):
        return dict(deterministic)
    if allocation_is_complete(llm):
        return dict(llm)
    return {**llm, **deterministic}


def combine(llm_fields: Dict[str, Any], deterministic: Dict[str, Any]) -> Dict[str, Any]:
    """Deterministic matches win over LLM output for the same field.

    Allocations are combined per asset class, and a complete LLM allocation
    is kept over a partial regex one.
    """
    merged = dict(llm_fields)
    merged.update(deterministic)
    llm_allocation = llm_fields.get("allocation")
    det_allocation = deterministic.get("allocation")
    if isinstance(llm_allocation, dict) and isinstance(det_allocation, dict):
        merged["allocation"] = _combine_allocation(llm_allocation, det_allocation)
    if merged.get("allocation"):
        merged.pop("no_holdings_yet", None)
    return merged

