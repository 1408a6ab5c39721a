"""Stage table: ordered stage descriptors for every shipped flow.

A flow is an ordered subsequence of ``STAGE_ORDER`` that starts at
``qualify`` and ends at ``end``. Variant conversations (five-slot goals vs.
the simplified amount/timeline stage, merged explain + CTA) are expressed as
separate flows here rather than as separate orchestrators.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from advisor.core.exceptions import ConfigurationError, UnknownStageError
from advisor.orchestrator.types import STAGE_ORDER, FlowName, Stage

GOAL_SLOTS: Tuple[str, ...] = (
    "goal_type", "target_amount", "horizon_years", "risk_tolerance", "liquidity_need",
)

SLOT_LABELS: Dict[str, str] = {
    "consent": "Ready to start",
    "goal_type": "Investment goal",
    "target_amount": "Target amount",
    "horizon_years": "Time horizon",
    "risk_tolerance": "Risk tolerance",
    "liquidity_need": "Liquidity needs",
    "allocation": "Asset allocation",
    "currency": "Currency",
    "holdings": "Top holdings",
    "sectors": "Sector breakdown",
    "email": "Email",
    "analysis_result": "Portfolio analysis",
    "cta_choice": "Next step",
}


@dataclass(frozen=True)
class StageDescriptor:
    stage: Stage
    title: str
    required: Tuple[str, ...] = ()
    optional: Tuple[str, ...] = ()
    offer_optional_once: bool = False
    """Ask one extra question for optional slots before declaring the stage complete."""


@dataclass(frozen=True)
class Flow:
    name: FlowName
    stages: Tuple[StageDescriptor, ...]

    def __post_init__(self) -> None:
        order = [d.stage for d in self.stages]
        if not order or order[0] != Stage.QUALIFY or order[-1] != Stage.END:
            raise ConfigurationError(
                f"Flow {self.name.value!r} must start at qualify and end at end",
                details={"stages": [s.value for s in order]},
            )
        positions = [STAGE_ORDER.index(s) for s in order]
        if positions != sorted(set(positions)):
            raise ConfigurationError(
                f"Flow {self.name.value!r} must follow the canonical stage order without repeats",
                details={"stages": [s.value for s in order]},
            )

    @property
    def initial(self) -> Stage:
        return self.stages[0].stage

    @property
    def order(self) -> List[Stage]:
        return [d.stage for d in self.stages]

    def descriptor(self, stage: Stage) -> StageDescriptor:
        for d in self.stages:
            if d.stage == stage:
                return d
        raise UnknownStageError(
            f"Stage {getattr(stage, 'value', stage)!r} is not part of flow {self.name.value!r}",
            details={"flow": self.name.value, "stage": str(getattr(stage, "value", stage))},
        )

    def position(self, stage: Stage) -> int:
        return self.order.index(self.descriptor(stage).stage)

    def next_stage(self, stage: Stage) -> Optional[Stage]:
        """The stage after *stage*, or None at the end of the flow."""
        idx = self.position(stage)
        if idx + 1 >= len(self.stages):
            return None
        return self.stages[idx + 1].stage

    def through(self, stage: Stage) -> Tuple[StageDescriptor, ...]:
        """Descriptors from the start of the flow up to and including *stage*."""
        return self.stages[: self.position(stage) + 1]


_QUALIFY = StageDescriptor(Stage.QUALIFY, "Getting started", required=("consent",))
_PORTFOLIO = StageDescriptor(
    Stage.PORTFOLIO,
    "Current portfolio",
    required=("allocation", "currency"),
    optional=("holdings", "sectors"),
    offer_optional_once=True,
)
_EMAIL = StageDescriptor(Stage.EMAIL_CAPTURE, "Contact", required=("email",))
_ANALYZE = StageDescriptor(Stage.ANALYZE, "Analysis", required=("analysis_result",))
_END = StageDescriptor(Stage.END, "Done")

STANDARD_FLOW = Flow(
    name=FlowName.STANDARD,
    stages=(
        _QUALIFY,
        StageDescriptor(Stage.GOALS, "Investment goals", required=GOAL_SLOTS),
        _PORTFOLIO,
        _EMAIL,
        _ANALYZE,
        StageDescriptor(Stage.EXPLAIN, "Explanation"),
        StageDescriptor(Stage.CTA, "Next steps", required=("cta_choice",)),
        _END,
    ),
)

SIMPLIFIED_FLOW = Flow(
    name=FlowName.SIMPLIFIED,
    stages=(
        _QUALIFY,
        StageDescriptor(
            Stage.AMOUNT_TIMELINE,
            "Amount and timeline",
            required=("goal_type", "target_amount", "horizon_years"),
        ),
        _PORTFOLIO,
        _EMAIL,
        _ANALYZE,
        StageDescriptor(Stage.EXPLAIN, "Explanation and next steps", required=("cta_choice",)),
        _END,
    ),
)

FLOWS: Dict[FlowName, Flow] = {
    FlowName.STANDARD: STANDARD_FLOW,
    FlowName.SIMPLIFIED: SIMPLIFIED_FLOW,
}


def get_flow(name: Union[FlowName, str]) -> Flow:
    try:
        return FLOWS[FlowName(name)]
    except (KeyError, ValueError) as exc:
        raise ConfigurationError(f"Unknown flow: {name!r}", cause=exc) from exc


def slot_label(slot: str) -> str:
    return SLOT_LABELS.get(slot, slot.replace("_", " ").capitalize())
