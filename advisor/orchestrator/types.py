"""Core data structures for the Orchestrator layer."""
from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Stage(str, Enum):
    """Every stage a session can be in, in canonical order."""
    QUALIFY = "qualify"
    GOALS = "goals"
    AMOUNT_TIMELINE = "amount_timeline"
    PORTFOLIO = "portfolio"
    EMAIL_CAPTURE = "email_capture"
    ANALYZE = "analyze"
    EXPLAIN = "explain"
    CTA = "cta"
    END = "end"


STAGE_ORDER: Tuple[Stage, ...] = tuple(Stage)


class FlowName(str, Enum):
    """Shipped stage tables (see ``advisor.orchestrator.stages.FLOWS``)."""
    STANDARD = "standard"
    SIMPLIFIED = "simplified"


class BlockType(str, Enum):
    """Closed set of DisplaySpec block types."""
    SUMMARY_BULLETS = "summary_bullets"
    CONVERSATION_TEXT = "conversation_text"
    TABLE = "table"
    CTA_GROUP = "cta_group"


GOAL_TYPES: Tuple[str, ...] = ("growth", "income", "balanced", "preservation", "lump_sum")
LEVELS: Tuple[str, ...] = ("low", "medium", "high")
ASSET_CLASSES: Tuple[str, ...] = (
    "stocks", "bonds", "cash", "commodities", "real_estate", "alternatives",
)
CTA_CHOICES: Tuple[str, ...] = ("book_call", "email_report")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Domain payloads ──────────────────────────────────────────────────────────


@dataclass
class GoalsPayload:
    goal_type: Optional[str] = None
    target_amount: Optional[float] = None
    horizon_years: Optional[float] = None
    risk_tolerance: Optional[str] = None
    liquidity_need: Optional[str] = None
    target_return: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class PortfolioPayload:
    allocation: Dict[str, float] = field(default_factory=dict)
    """Asset class -> percent. Counts as complete only when it sums to 100 (± tolerance)."""

    currency: Optional[str] = None
    holdings: List[Dict[str, Any]] = field(default_factory=list)
    """Up to ``max_holdings`` entries: {"name": str, "weight": float | None}."""

    sectors: Dict[str, float] = field(default_factory=dict)
    portfolio_value: Optional[float] = None

    new_investor: bool = False
    """Set by the "no investments yet" shortcut."""

    optional_offered: bool = False
    """Transient gate: the optional-detail question has been asked once."""

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "allocation": dict(self.allocation),
            "currency": self.currency,
            "new_investor": self.new_investor,
        }
        if self.holdings:
            out["holdings"] = [dict(h) for h in self.holdings]
        if self.sectors:
            out["sectors"] = dict(self.sectors)
        if self.portfolio_value is not None:
            out["portfolio_value"] = self.portfolio_value
        return out


@dataclass
class ContactPayload:
    consent: Optional[bool] = None
    email: Optional[str] = None
    cta_choice: Optional[str] = None


@dataclass
class Session:
    """Per-conversation state owned by the session store.

    ``completed_slots`` and ``missing_slots`` are derived; they are recomputed
    by ``completion.refresh_slots`` and never edited by handlers.
    """

    session_id: str
    stage: Stage = Stage.QUALIFY
    flow: FlowName = FlowName.STANDARD
    goals: GoalsPayload = field(default_factory=GoalsPayload)
    portfolio: PortfolioPayload = field(default_factory=PortfolioPayload)
    contact: ContactPayload = field(default_factory=ContactPayload)
    analysis_result: Optional[Dict[str, Any]] = None
    completed_slots: List[str] = field(default_factory=list)
    missing_slots: List[str] = field(default_factory=list)
    key_facts: List[str] = field(default_factory=list)
    turn_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def public_view(self) -> Dict[str, Any]:
        """Session fields exposed to the caller."""
        return {
            "id": self.session_id,
            "stage": self.stage.value,
            "completed_slots": list(self.completed_slots),
            "missing_slots": list(self.missing_slots),
            "key_facts": list(self.key_facts),
        }

    def mutable_fields(self) -> Dict[str, Any]:
        """Fields a turn may change, for ``SessionStore.update``."""
        return {
            "stage": self.stage,
            "flow": self.flow,
            "goals": self.goals,
            "portfolio": self.portfolio,
            "contact": self.contact,
            "analysis_result": self.analysis_result,
            "completed_slots": self.completed_slots,
            "missing_slots": self.missing_slots,
            "key_facts": self.key_facts,
            "turn_count": self.turn_count,
        }


# ── Display spec ─────────────────────────────────────────────────────────────


@dataclass
class Block:
    """One renderer-agnostic block. ``content`` is a JSON-serialized payload."""

    type: BlockType
    content: str

    @classmethod
    def of(cls, block_type: BlockType, payload: Any) -> "Block":
        return cls(type=block_type, content=json.dumps(payload, ensure_ascii=False))

    def payload(self) -> Any:
        return json.loads(self.content)

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type.value, "content": self.content}


@dataclass
class DisplaySpec:
    blocks: List[Block] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"blocks": [b.to_dict() for b in self.blocks]}

    def text(self) -> str:
        """Plain-text rendering of the conversation blocks (for transcripts)."""
        lines: List[str] = []
        for block in self.blocks:
            if block.type == BlockType.CONVERSATION_TEXT:
                lines.extend(str(line) for line in block.payload())
        return "\n".join(lines)


# ── Handler output and orchestrator result ───────────────────────────────────


@dataclass
class StageOutcome:
    """Semantic output of one stage handler; rendered by the ResponseBuilder."""

    text: List[str] = field(default_factory=list)
    table: Optional[Dict[str, Any]] = None
    """{"title": str, "columns": [str, ...], "rows": [[...], ...]}"""
    actions: List[Dict[str, str]] = field(default_factory=list)
    """CTA buttons: [{"label": str, "action": str}]"""
    advanced: bool = False
    llm_calls: int = 0
    validation_error: Optional[str] = None


@dataclass
class TurnUsage:
    llm_calls: int = 0
    total_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"llm_calls": self.llm_calls, "total_ms": round(self.total_ms, 1)}


@dataclass
class OrchestratorResult:
    """Caller-facing response for one processed message."""

    display_spec: DisplaySpec
    session: Dict[str, Any]
    usage: Optional[TurnUsage] = None
    advanced: bool = False
    error: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "displaySpec": self.display_spec.to_dict(),
            "session": dict(self.session),
            "usage": self.usage.to_dict() if self.usage else None,
        }


# ── Configuration ────────────────────────────────────────────────────────────

_TRUE = ("1", "true", "yes")


@dataclass
class OrchestratorConfig:
    """Deployment-tunable orchestrator behaviour."""

    flow: FlowName = FlowName.STANDARD
    """Which stage table new sessions follow."""

    llm_timeout_seconds: Optional[float] = 15.0
    """Bound for every extraction / prompt call. None = no timeout."""

    extraction_model: Optional[str] = None
    """Model override for slot extraction (None = client default)."""

    extraction_max_tokens: int = 300

    prompt_model: Optional[str] = None
    """Model override for conversational prompt phrasing."""

    generate_prompts: bool = True
    """Phrase follow-up questions with the LLM; deterministic text is used otherwise."""

    session_ttl_seconds: int = 24 * 60 * 60
    allocation_tolerance: float = 2.0
    default_currency: str = "USD"
    max_holdings: int = 10

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flow": self.flow.value,
            "llm_timeout_seconds": self.llm_timeout_seconds,
            "extraction_model": self.extraction_model,
            "extraction_max_tokens": self.extraction_max_tokens,
            "prompt_model": self.prompt_model,
            "generate_prompts": self.generate_prompts,
            "session_ttl_seconds": self.session_ttl_seconds,
            "allocation_tolerance": self.allocation_tolerance,
            "default_currency": self.default_currency,
            "max_holdings": self.max_holdings,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]] = None) -> "OrchestratorConfig":
        """Load from a dict. Missing or invalid keys use defaults."""
        if not data:
            return cls()
        try:
            flow = FlowName(str(data.get("flow", "standard")).strip().lower())
        except ValueError:
            flow = FlowName.STANDARD
        timeout = data.get("llm_timeout_seconds", 15.0)
        if timeout is not None:
            try:
                timeout = float(timeout)
            except (TypeError, ValueError):
                timeout = 15.0
        currency = str(data.get("default_currency") or "USD").strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            currency = "USD"
        generate = data.get("generate_prompts", True)
        if isinstance(generate, str):
            generate = generate.strip().lower() in _TRUE
        return cls(
            flow=flow,
            llm_timeout_seconds=timeout,
            extraction_model=data.get("extraction_model") or None,
            extraction_max_tokens=int(data.get("extraction_max_tokens", 300)),
            prompt_model=data.get("prompt_model") or None,
            generate_prompts=bool(generate),
            session_ttl_seconds=int(data.get("session_ttl_seconds", 24 * 60 * 60)),
            allocation_tolerance=float(data.get("allocation_tolerance", 2.0)),
            default_currency=currency,
            max_holdings=int(data.get("max_holdings", 10)),
        )

    @classmethod
    def from_env(cls) -> "OrchestratorConfig":
        """ADVISOR_FLOW, LLM_TIMEOUT_SECONDS, EXTRACTION_MODEL, PROMPT_MODEL,
        GENERATE_PROMPTS, SESSION_TTL_SECONDS, ALLOCATION_TOLERANCE, DEFAULT_CURRENCY."""
        env_map = {
            "flow": "ADVISOR_FLOW",
            "llm_timeout_seconds": "LLM_TIMEOUT_SECONDS",
            "extraction_model": "EXTRACTION_MODEL",
            "prompt_model": "PROMPT_MODEL",
            "generate_prompts": "GENERATE_PROMPTS",
            "session_ttl_seconds": "SESSION_TTL_SECONDS",
            "allocation_tolerance": "ALLOCATION_TOLERANCE",
            "default_currency": "DEFAULT_CURRENCY",
        }
        data = {key: os.environ[var] for key, var in env_map.items() if os.environ.get(var)}
        return cls.from_dict(data)
