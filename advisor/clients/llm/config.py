from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

_DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "gemini": "gemini-2.0-flash",
}


@dataclass
class LLMConfig:
    """Connection settings for one LLM client."""

    model: str
    provider: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None

    temperature: float = 0.0
    max_tokens: Optional[int] = None
    timeout: float = 60.0

    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary, filtering out None values."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_env(cls) -> Optional["LLMConfig"]:
        """Build from OPENAI_API_KEY / GEMINI_API_KEY and LLM_MODEL.

        Returns None when no provider key is set. LLM_PROVIDER picks one
        explicitly when both keys are present.
        """
        openai_key = os.environ.get("OPENAI_API_KEY")
        gemini_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        provider = (os.environ.get("LLM_PROVIDER") or "").strip().lower() or None
        if provider is None:
            provider = "openai" if openai_key else ("gemini" if gemini_key else None)
        if provider is None:
            return None
        api_key = openai_key if provider == "openai" else gemini_key
        if not api_key:
            return None
        return cls(
            model=os.environ.get("LLM_MODEL") or _DEFAULT_MODELS.get(provider, ""),
            provider=provider,
            api_key=api_key,
            base_url=os.environ.get("OPENAI_BASE_URL") if provider == "openai" else None,
            temperature=float(os.environ.get("LLM_TEMPERATURE", "0.1")),
        )
