"""
Consumer-side state for the dashboard.

The store holds one immutable CycleState and moves it through
idle -> loading -> ready | failed. Only the orchestrator's outcomes move it:
``begin`` when a cycle starts, then ``publish`` or ``fail``.
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from .models import CycleState, CycleStatus, TokenDataset, GENERIC_CYCLE_ERROR
from .orchestrator import CycleError, PredictionOrchestrator

logger = logging.getLogger(__name__)


class CycleInProgressError(RuntimeError):
    """A cycle was requested while another one is still loading."""


class DashboardStore:
    """Current cycle state plus the selected token."""

    def __init__(self, tokens: Sequence[str]):
        if not tokens:
            raise ValueError("at least one token is required")
        self.tokens = tuple(tokens)
        self._state = CycleState()
        self._selected_token = self.tokens[0]
        self._lock = threading.Lock()

    @property
    def state(self) -> CycleState:
        with self._lock:
            return self._state

    @property
    def selected_token(self) -> str:
        with self._lock:
            return self._selected_token

    def select(self, token: str) -> None:
        if token not in self.tokens:
            raise KeyError(token)
        with self._lock:
            self._selected_token = token

    def begin(self) -> CycleState:
        """
        Move to loading.

        Raises:
            CycleInProgressError: If a cycle is already loading
        """
        with self._lock:
            if self._state.status is CycleStatus.LOADING:
                raise CycleInProgressError("a fetch cycle is already running")
            self._state = replace(self._state, status=CycleStatus.LOADING, error=None)
            return self._state

    def publish(self, dataset: TokenDataset) -> CycleState:
        with self._lock:
            self._state = CycleState(
                status=CycleStatus.READY,
                dataset=dataset,
                error=None,
                completed_at=datetime.now(timezone.utc),
            )
            return self._state

    def fail(self, message: str = GENERIC_CYCLE_ERROR) -> CycleState:
        with self._lock:
            self._state = replace(
                self._state,
                status=CycleStatus.FAILED,
                error=message,
                completed_at=datetime.now(timezone.utc),
            )
            return self._state

    def run(self, orchestrator: PredictionOrchestrator) -> CycleState:
        """
        Run one cycle to completion and record its outcome.

        The caller must have called ``begin`` first.
        """
        try:
            dataset = orchestrator.run_cycle()
        except CycleError as e:
            logger.error(f"Fetch cycle failed: {e}")
            return self.fail(str(e))
        return self.publish(dataset)

    def trigger(self, orchestrator_factory: Callable[[], PredictionOrchestrator],
                background: bool = True,
                wrap: Optional[Callable[[Callable[[], None]], Callable[[], None]]] = None) -> CycleState:
        """
        Start a new cycle.

        Args:
            orchestrator_factory: Builds the orchestrator for this cycle; it is closed afterwards
            background: Run on a daemon thread instead of inline
            wrap: Optional decorator for the thread body, e.g. to push an app context

        Returns:
            The loading state when running in the background, else the final state
            (failed if the cycle thread could not be started)

        Raises:
            CycleInProgressError: If a cycle is already loading
        """
        self.begin()

        def body():
            try:
                orchestrator = orchestrator_factory()
                try:
                    self.run(orchestrator)
                finally:
                    orchestrator.close()
            except Exception as e:
                logger.error(f"Unexpected error running fetch cycle: {e}", exc_info=True)
                self.fail()

        if not background:
            body()
            return self.state

        target = wrap(body) if wrap else body
        thread = threading.Thread(target=target, name='fetch-cycle', daemon=True)
        try:
            thread.start()
        except RuntimeError as e:
            logger.error(f"Could not start fetch cycle thread: {e}")
            return self.fail()
        return self.state
