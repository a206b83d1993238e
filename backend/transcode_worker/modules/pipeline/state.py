"""Run state machine.

Transitions are strictly sequential: each stage moves the run one state
forward, and ``failed`` is reachable from every non-terminal state.
"""

from typing import Optional

from transcode_worker.modules.pipeline.models import (
    STAGE_TARGETS,
    ErrorKind,
    PipelineStage,
    PipelineState,
)

_ORDER = [
    PipelineState.RECEIVED,
    PipelineState.LOCATED,
    PipelineState.FETCHED,
    PipelineState.PROBED,
    PipelineState.TRANSCODED,
    PipelineState.PUBLISHED,
    PipelineState.NOTIFIED,
]

TERMINAL_STATES = frozenset({PipelineState.NOTIFIED, PipelineState.FAILED})


class InvalidTransitionError(Exception):
    """Raised on a transition the run's state does not allow."""

    def __init__(self, current: PipelineState, target: PipelineState):
        self.current = current
        self.target = target
        super().__init__(f"Invalid transition from {current.value} to {target.value}")


class PipelineStateMachine:
    """Tracks where a single run is."""

    def __init__(self):
        self.state = PipelineState.RECEIVED
        self.error_kind: Optional[ErrorKind] = None
        self.failed_stage: Optional[PipelineStage] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def next_stage(self) -> Optional[PipelineStage]:
        """Stage that would run next, None once terminal."""
        if self.is_terminal:
            return None
        target = _ORDER[_ORDER.index(self.state) + 1]
        for stage, stage_target in STAGE_TARGETS.items():
            if stage_target == target:
                return stage
        return None

    def advance(self, stage: PipelineStage) -> PipelineState:
        """Complete ``stage``; it must be the next one."""
        target = STAGE_TARGETS[stage]
        if self.is_terminal or _ORDER.index(target) != _ORDER.index(self.state) + 1:
            raise InvalidTransitionError(self.state, target)
        self.state = target
        return self.state

    def fail(self, kind: ErrorKind, stage: Optional[PipelineStage]) -> PipelineState:
        if self.is_terminal:
            raise InvalidTransitionError(self.state, PipelineState.FAILED)
        self.state = PipelineState.FAILED
        self.error_kind = kind
        self.failed_stage = stage
        return self.state
