"""
Step runner for product state migrations.

A migration is an ordered list of MigrationStep objects sharing one mutable
context dict. Before each step a progress event is emitted::

    {operation_id, current_step, total_steps, step_name, progress, message, start_time}

and the operation moves through the states
``started -> backed-up -> transformed -> cleaned-up -> completed`` (a step
names the state it reaches). A failing step leaves the operation ``failed``;
the caller restores the backup and marks it ``rolled-back``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from src.services.exceptions import MigrationError
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.datetime_utils import utc_now

logger = get_service_logger(__name__)

STATE_STARTED = "started"
STATE_BACKED_UP = "backed-up"
STATE_TRANSFORMED = "transformed"
STATE_CLEANED_UP = "cleaned-up"
STATE_COMPLETED = "completed"
STATE_FAILED = "failed"
STATE_ROLLED_BACK = "rolled-back"

ProgressCallback = Callable[[Dict[str, Any]], None]


@dataclass
class MigrationStep:
    """
    One step of a migration.

    Attributes:
        key: Identifier reported on MigrationError.step (e.g. "load-data")
        name: Human readable step name for progress events
        message: Progress message, or a callable building it from the context
        execute: Work to do; reads and writes the shared context
        reaches: State the operation is in once the step succeeds
    """

    key: str
    name: str
    message: Union[str, Callable[[Dict[str, Any]], str]]
    execute: Callable[[Dict[str, Any]], None]
    reaches: Optional[str] = None

    def render_message(self, context: Dict[str, Any]) -> str:
        if callable(self.message):
            return self.message(context)
        return self.message


class MigrationSaga:
    """Runs steps in order, reporting progress and tracking the operation state."""

    def __init__(
        self,
        operation_id: str,
        steps: List[MigrationStep],
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.operation_id = operation_id
        self.steps = steps
        self.on_progress = on_progress
        self.start_time: datetime = utc_now()
        self.state = STATE_STARTED
        self.failed_step: Optional[MigrationStep] = None

    def _emit(self, index: int, step: MigrationStep, context: Dict[str, Any]) -> None:
        if self.on_progress is None:
            return
        total = len(self.steps)
        self.on_progress(
            {
                "operation_id": self.operation_id,
                "current_step": index + 1,
                "total_steps": total,
                "step_name": step.name,
                "progress": round((index + 1) * 100 / total),
                "message": step.render_message(context),
                "start_time": self.start_time,
            }
        )

    def _transition(self, state: str) -> None:
        logger.debug(f"{self.operation_id}: {self.state} -> {state}")
        self.state = state

    def run(self, context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Execute every step against ``context``.

        Returns:
            The context after the last step

        Raises:
            MigrationError: A step failed. MigrationErrors raised by a step
                propagate as-is; anything else is wrapped as a recoverable
                ``MIGRATION_FAILED`` error carrying the step key.
        """
        for index, step in enumerate(self.steps):
            self._emit(index, step, context)
            try:
                step.execute(context)
            except MigrationError:
                self.failed_step = step
                self._transition(STATE_FAILED)
                raise
            except Exception as e:
                self.failed_step = step
                self._transition(STATE_FAILED)
                log_operation(
                    logger,
                    operation="migration_step",
                    outcome="error",
                    level=logging.ERROR,
                    operation_id=self.operation_id,
                    step=step.key,
                    error=str(e),
                )
                raise MigrationError(
                    f"Migration failed: {e}", "MIGRATION_FAILED", step.key, recoverable=True
                ) from e
            if step.reaches:
                self._transition(step.reaches)

        self._transition(STATE_COMPLETED)
        return context

    def mark_rolled_back(self) -> None:
        self._transition(STATE_ROLLED_BACK)
