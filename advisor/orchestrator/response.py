"""Response builder: StageOutcome + session -> OrchestratorResult.

Blocks are always emitted in the same order: progress bullets, optional
table, conversation text, optional CTA group.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from advisor.orchestrator.completion import slot_progress
from advisor.orchestrator.stages import Flow, slot_label
from advisor.orchestrator.types import (
    ASSET_CLASSES,
    Block,
    BlockType,
    DisplaySpec,
    OrchestratorResult,
    Session,
    StageOutcome,
    TurnUsage,
)

ERROR_TEXT = "Sorry, I encountered an error processing your message. Please try again."
RETRY_ACTION = {"label": "Try Again", "action": "retry"}


def progress_bullets(session: Session, flow: Flow) -> List[str]:
    descriptor = flow.descriptor(session.stage)
    step = flow.position(session.stage) + 1
    bullets = [f"Step {step} of {len(flow.stages)}: {descriptor.title}"]
    progress = slot_progress(session, flow)
    if progress["total"]:
        bullets.append(f"Progress: {progress['done']}/{progress['total']} details for this step")
    if session.completed_slots:
        bullets.append("✓ " + ", ".join(slot_label(s) for s in session.completed_slots))
    return bullets


def _asset_label(asset: str) -> str:
    return asset.replace("_", " ").capitalize()


def allocation_table(
    allocation: Mapping[str, float],
    *,
    title: str = "Your allocation",
) -> Dict[str, Any]:
    ordered = [a for a in ASSET_CLASSES if a in allocation] + [a for a in allocation if a not in ASSET_CLASSES]
    return {
        "title": title,
        "columns": ["Asset Class", "Allocation"],
        "rows": [[_asset_label(a), f"{allocation[a]:g}%"] for a in ordered],
    }


def comparison_table(analysis: Mapping[str, Any]) -> Dict[str, Any]:
    """Current vs recommended allocation with drift, from an analysis result."""
    current = analysis.get("current_allocation") or {}
    recommended = analysis.get("recommended_allocation") or {}
    drift = analysis.get("drift") or {}
    assets = [a for a in ASSET_CLASSES if a in current or a in recommended]
    assets += [a for a in drift if a not in assets]
    return {
        "title": "Current vs suggested allocation",
        "columns": ["Asset Class", "Current", "Suggested", "Difference"],
        "rows": [
            [
                _asset_label(a),
                f"{current.get(a, 0.0):g}%",
                f"{recommended.get(a, 0.0):g}%",
                f"{drift.get(a, 0.0):+g}",
            ]
            for a in assets
        ],
    }


def error_display_spec() -> DisplaySpec:
    return DisplaySpec(blocks=[
        Block.of(BlockType.CONVERSATION_TEXT, [ERROR_TEXT]),
        Block.of(BlockType.CTA_GROUP, [RETRY_ACTION]),
    ])


class ResponseBuilder:
    def build(
        self,
        outcome: StageOutcome,
        session: Session,
        flow: Flow,
        usage: Optional[TurnUsage] = None,
    ) -> OrchestratorResult:
        blocks: List[Block] = [Block.of(BlockType.SUMMARY_BULLETS, progress_bullets(session, flow))]
        if outcome.table:
            blocks.append(Block.of(BlockType.TABLE, outcome.table))
        text = [t for t in outcome.text if t] or ["Could you tell me a bit more?"]
        blocks.append(Block.of(BlockType.CONVERSATION_TEXT, text))
        if outcome.actions:
            blocks.append(Block.of(BlockType.CTA_GROUP, list(outcome.actions)))
        return OrchestratorResult(
            display_spec=DisplaySpec(blocks=blocks),
            session=session.public_view(),
            usage=usage,
            advanced=outcome.advanced,
        )

    def error(self, session: Optional[Session], usage: Optional[TurnUsage] = None) -> OrchestratorResult:
        view: Dict[str, Any] = session.public_view() if session is not None else {}
        return OrchestratorResult(
            display_spec=error_display_spec(),
            session=view,
            usage=usage,
            error=True,
        )
