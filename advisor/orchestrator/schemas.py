"""Per-stage extraction schemas.

Every field is optional: an extraction is a best-effort partial object. The
validators normalise the loose shapes LLMs return ("60%", "Aggressive",
"fixed income") into the canonical vocabulary before merge. Branch signals
(``no_holdings_yet``, ``suggest_default``, ``restart``) are plain flags the
handlers interpret.
"""
from __future__ import annotations

import re
from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as SchemaValidationError

from advisor.orchestrator.types import ASSET_CLASSES, CTA_CHOICES, GOAL_TYPES, LEVELS

_LEVEL_ALIASES = {
    "conservative": "low",
    "cautious": "low",
    "minimal": "low",
    "none": "low",
    "moderate": "medium",
    "average": "medium",
    "balanced": "medium",
    "some": "medium",
    "aggressive": "high",
    "very high": "high",
    "significant": "high",
}

_GOAL_ALIASES = {
    "wealth growth": "growth",
    "capital growth": "growth",
    "appreciation": "growth",
    "retirement": "growth",
    "dividends": "income",
    "passive income": "income",
    "cash flow": "income",
    "preserve": "preservation",
    "capital preservation": "preservation",
    "safety": "preservation",
    "mix": "balanced",
    "lump sum": "lump_sum",
    "lump-sum": "lump_sum",
    "purchase": "lump_sum",
}

ASSET_ALIASES = {
    "stock": "stocks",
    "equities": "stocks",
    "equity": "stocks",
    "shares": "stocks",
    "etfs": "stocks",
    "bond": "bonds",
    "fixed income": "bonds",
    "fixed_income": "bonds",
    "treasuries": "bonds",
    "money market": "cash",
    "savings": "cash",
    "commodity": "commodities",
    "gold": "commodities",
    "precious metals": "commodities",
    "real estate": "real_estate",
    "realestate": "real_estate",
    "property": "real_estate",
    "reits": "real_estate",
    "reit": "real_estate",
    "crypto": "alternatives",
    "cryptocurrency": "alternatives",
    "alternative": "alternatives",
    "private equity": "alternatives",
    "other": "alternatives",
}


def to_number(value: Any) -> Optional[float]:
    """Coerce "60%", "$500,000", "500k", "1.2m" or numbers to float; None if not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().lower().replace(",", "").replace("$", "").replace("%", "")
    match = re.fullmatch(r"(-?\d+(?:\.\d+)?)\s*([km]|thousand|million)?", text)
    if not match:
        return None
    number = float(match.group(1))
    suffix = match.group(2)
    if suffix in ("k", "thousand"):
        number *= 1_000
    elif suffix in ("m", "million"):
        number *= 1_000_000
    return number


def normalize_asset_class(name: str) -> Optional[str]:
    key = re.sub(r"\s+", " ", str(name).strip().lower())
    if key in ASSET_CLASSES:
        return key
    if key in ASSET_ALIASES:
        return ASSET_ALIASES[key]
    key_underscored = key.replace(" ", "_")
    if key_underscored in ASSET_CLASSES:
        return key_underscored
    return None


def _normalize_choice(value: Any, allowed: tuple, aliases: Dict[str, str]) -> Any:
    if value is None:
        return None
    key = str(value).strip().lower()
    if key in allowed:
        return key
    if key in aliases:
        return aliases[key]
    key_underscored = key.replace(" ", "_")
    if key_underscored in allowed:
        return key_underscored
    return value


class ExtractionModel(BaseModel):
    """Base for stage schemas: unknown keys ignored, empty strings treated as missing."""

    model_config = ConfigDict(extra="ignore")

    prompt_schema: ClassVar[str] = "{}"
    prompt_examples: ClassVar[str] = ""

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in ("", "null", "none", "n/a", "unknown"):
            return None
        return value

    def fields_set(self) -> Dict[str, Any]:
        """Non-empty fields, with false branch flags dropped."""
        return {
            k: v for k, v in self.model_dump().items()
            if v is not None and v is not False and v != [] and v != {}
        }

    def is_empty(self) -> bool:
        return not self.fields_set()


class QualifyExtraction(ExtractionModel):
    consent: Optional[bool] = None
    restart: bool = False

    prompt_schema: ClassVar[str] = '{"consent": true|false}'
    prompt_examples: ClassVar[str] = (
        '- "yes, let\'s analyze my portfolio" -> {"consent": true}\n'
        '- "not right now" -> {"consent": false}'
    )


class GoalsExtraction(ExtractionModel):
    goal_type: Optional[str] = None
    target_amount: Optional[float] = Field(default=None, gt=0)
    horizon_years: Optional[float] = Field(default=None, gt=0, le=50)
    risk_tolerance: Optional[str] = None
    liquidity_need: Optional[str] = None
    target_return: Optional[float] = Field(default=None, ge=0, le=100)

    prompt_schema: ClassVar[str] = (
        '{\n'
        '  "goal_type": "growth|income|balanced|preservation|lump_sum",\n'
        '  "target_amount": number (raw number, no formatting),\n'
        '  "horizon_years": number,\n'
        '  "risk_tolerance": "low|medium|high",\n'
        '  "liquidity_need": "low|medium|high",\n'
        '  "target_return": number (annual percent, optional)\n'
        '}'
    )
    prompt_examples: ClassVar[str] = (
        '- "aggressive growth" -> {"goal_type": "growth", "risk_tolerance": "high"}\n'
        '- "$500,000" -> {"target_amount": 500000}\n'
        '- "10 years" -> {"horizon_years": 10}\n'
        '- "I won\'t need the money before then" -> {"liquidity_need": "low"}'
    )

    @field_validator("goal_type", mode="before")
    @classmethod
    def _goal_type(cls, value: Any) -> Any:
        value = _normalize_choice(value, GOAL_TYPES, _GOAL_ALIASES)
        return value if value in GOAL_TYPES else None

    @field_validator("risk_tolerance", "liquidity_need", mode="before")
    @classmethod
    def _level(cls, value: Any) -> Any:
        value = _normalize_choice(value, LEVELS, _LEVEL_ALIASES)
        return value if value in LEVELS else None

    @field_validator("target_amount", "horizon_years", "target_return", mode="before")
    @classmethod
    def _number(cls, value: Any) -> Any:
        if value is None:
            return None
        number = to_number(value)
        return number if number is not None else value


class HoldingItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1, max_length=120)
    weight: Optional[float] = Field(default=None, ge=0, le=100)

    @field_validator("weight", mode="before")
    @classmethod
    def _weight(cls, value: Any) -> Any:
        if value is None:
            return None
        number = to_number(value)
        return number if number is not None else value


class PortfolioExtraction(ExtractionModel):
    allocation: Optional[Dict[str, float]] = None
    currency: Optional[str] = None
    holdings: Optional[List[HoldingItem]] = None
    sectors: Optional[Dict[str, float]] = None
    portfolio_value: Optional[float] = Field(default=None, gt=0)
    no_holdings_yet: bool = False
    suggest_default: bool = False

    prompt_schema: ClassVar[str] = (
        '{\n'
        '  "allocation": {"stocks": number, "bonds": number, "cash": number, '
        '"commodities": number, "real_estate": number, "alternatives": number},\n'
        '  "currency": "3-letter ISO code",\n'
        '  "holdings": [{"name": string, "weight": number}] (max 10),\n'
        '  "sectors": {"<sector>": number},\n'
        '  "portfolio_value": number,\n'
        '  "no_holdings_yet": true if the user has no investments,\n'
        '  "suggest_default": true if the user asks you to propose an allocation\n'
        '}'
    )
    prompt_examples: ClassVar[str] = (
        '- "60% stocks, 30% bonds, 10% cash in USD" -> '
        '{"allocation": {"stocks": 60, "bonds": 30, "cash": 10}, "currency": "USD"}\n'
        '- "I haven\'t invested yet" -> {"no_holdings_yet": true}\n'
        '- "just suggest something sensible" -> {"suggest_default": true}\n'
        '- "mostly Apple 20% and Microsoft 15%" -> '
        '{"holdings": [{"name": "Apple", "weight": 20}, {"name": "Microsoft", "weight": 15}]}'
    )

    @field_validator("allocation", mode="before")
    @classmethod
    def _allocation(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        cleaned: Dict[str, float] = {}
        for raw_key, raw_val in value.items():
            number = to_number(raw_val)
            if number is None:
                continue
            asset = normalize_asset_class(raw_key) or "alternatives"
            cleaned[asset] = cleaned.get(asset, 0.0) + number
        return cleaned or None

    @field_validator("sectors", mode="before")
    @classmethod
    def _sectors(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        cleaned = {}
        for raw_key, raw_val in value.items():
            number = to_number(raw_val)
            if number is not None and str(raw_key).strip():
                cleaned[str(raw_key).strip().lower()] = number
        return cleaned or None

    @field_validator("currency", mode="before")
    @classmethod
    def _currency(cls, value: Any) -> Any:
        if value is None:
            return None
        return str(value).strip().upper()

    @field_validator("portfolio_value", mode="before")
    @classmethod
    def _value(cls, value: Any) -> Any:
        if value is None:
            return None
        number = to_number(value)
        return number if number is not None else value


class ContactExtraction(ExtractionModel):
    email: Optional[str] = None

    prompt_schema: ClassVar[str] = '{"email": "the email address exactly as written"}'
    prompt_examples: ClassVar[str] = '- "sure, it\'s jane.doe@example.com" -> {"email": "jane.doe@example.com"}'

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, value: Any) -> Any:
        if value is None:
            return None
        return str(value).strip().strip("<>.,;").lower()


class CtaExtraction(ExtractionModel):
    cta_choice: Optional[str] = None
    restart: bool = False

    prompt_schema: ClassVar[str] = '{"cta_choice": "book_call|email_report", "restart": true|false}'
    prompt_examples: ClassVar[str] = (
        '- "I\'d like to talk to an advisor" -> {"cta_choice": "book_call"}\n'
        '- "just send me the report" -> {"cta_choice": "email_report"}'
    )

    @field_validator("cta_choice", mode="before")
    @classmethod
    def _choice(cls, value: Any) -> Any:
        value = _normalize_choice(value, CTA_CHOICES, {"call": "book_call", "email": "email_report", "report": "email_report"})
        return value if value in CTA_CHOICES else None


def validate_partial(schema: Type[ExtractionModel], data: Dict[str, Any]) -> ExtractionModel:
    """Validate *data*, dropping top-level fields that fail instead of rejecting the whole object."""
    payload = dict(data)
    for _ in range(len(payload) + 1):
        try:
            return schema.model_validate(payload)
        except SchemaValidationError as exc:
            bad = {err["loc"][0] for err in exc.errors() if err.get("loc")}
            if not bad or not bad & set(payload):
                break
            for key in bad:
                payload.pop(key, None)
    return schema()
