"""
Progress Tracking

Advisory progress side-channel and per-step bookkeeping for the pipeline.

Progress events are fire-and-forget: callbacks that raise are logged and
ignored, and percentages never move backwards within a stage.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    """One progress notification for a stage."""
    stage: str
    percentage: float
    message: str
    items_processed: int
    total_items: int


@dataclass
class StepState:
    """Lifecycle state of one pipeline step."""
    name: str
    status: str = STATUS_PENDING
    progress: float = 0.0
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'status': self.status,
            'progress': self.progress,
            'started_at': self.started_at,
            'completed_at': self.completed_at,
            'error': self.error,
        }


ProgressCallback = Callable[[ProgressEvent], None]


class ProgressTracker:
    """
    Tracks step states and fans progress events out to callbacks.

    Responsibilities:
    - Hold a StepState per stage
    - Clamp percentages to be monotonic within a running stage
    - Keep a bounded history of events
    - Isolate callback failures from the pipeline
    """

    def __init__(self, stage_names: List[str], max_history: int = 1000):
        self.stage_names = list(stage_names)
        self.steps: Dict[str, StepState] = {name: StepState(name) for name in self.stage_names}
        self.history: Deque[ProgressEvent] = deque(maxlen=max_history)
        self._callbacks: List[ProgressCallback] = []

    def add_callback(self, callback: ProgressCallback) -> None:
        self._callbacks.append(callback)

    def remove_callback(self, callback: ProgressCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def start_step(self, stage: str) -> None:
        step = self.steps[stage]
        step.status = STATUS_RUNNING
        step.progress = 0.0
        step.started_at = datetime.now().isoformat()
        step.completed_at = None
        step.error = None
        step.result = None

    def complete_step(self, stage: str, result: Dict[str, Any]) -> None:
        step = self.steps[stage]
        step.status = STATUS_COMPLETED
        step.progress = 100.0
        step.completed_at = datetime.now().isoformat()
        step.result = result

    def fail_step(self, stage: str, error: BaseException) -> None:
        step = self.steps[stage]
        step.status = STATUS_FAILED
        step.completed_at = datetime.now().isoformat()
        step.error = str(error)

    def emit(
        self,
        stage: str,
        percentage: float,
        message: str,
        items_processed: int = 0,
        total_items: int = 0
    ) -> ProgressEvent:
        """Record and broadcast a progress event for a stage."""
        step = self.steps.get(stage)
        clamped = max(0.0, min(100.0, float(percentage)))
        if step is not None:
            clamped = max(clamped, step.progress)
            step.progress = clamped

        event = ProgressEvent(
            stage=stage,
            percentage=clamped,
            message=message,
            items_processed=items_processed,
            total_items=total_items,
        )
        self.history.append(event)

        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"⚠️ Progress callback failed: {e}")

        return event

    def overall_status(self) -> str:
        statuses = [step.status for step in self.steps.values()]
        if STATUS_RUNNING in statuses:
            return STATUS_RUNNING
        if STATUS_FAILED in statuses:
            return STATUS_FAILED
        if statuses and all(status == STATUS_COMPLETED for status in statuses):
            return STATUS_COMPLETED
        return "idle"

    def get_status(self) -> Dict[str, Any]:
        return {
            'status': self.overall_status(),
            'steps': {name: step.to_dict() for name, step in self.steps.items()},
        }

    def reset(self) -> None:
        self.steps = {name: StepState(name) for name in self.stage_names}
        self.history.clear()
