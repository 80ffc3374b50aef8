"""Debounced, latest-snapshot-wins plan regeneration."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, List, Optional

from ..config import PhaseplanConfig
from ..errors import PhasePlanError
from ..schema import AppConcept, DynamicPhasePlan
from .generator import PhasePlanGenerator

LOGGER = logging.getLogger(__name__)

GenerateFn = Callable[[AppConcept], DynamicPhasePlan]


class PlanRegenerator:
    """Coalesce rapid concept edits into plan regenerations.

    Triggers are debounced; computations run one at a time on a single worker so
    a trigger arriving mid-flight is queued behind the running one. Only a
    result computed from the most recent snapshot is stored.
    """

    def __init__(
        self,
        generate: Optional[GenerateFn] = None,
        *,
        debounce_seconds: float = 0.5,
        on_plan: Optional[Callable[[DynamicPhasePlan], None]] = None,
    ) -> None:
        if debounce_seconds < 0:
            raise ValueError("debounce_seconds must be non-negative")
        self._generate = generate or PhasePlanGenerator().generate
        self._debounce = debounce_seconds
        self._on_plan = on_plan
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="phaseplan-regen")
        self._timer: Optional[threading.Timer] = None
        self._futures: List[Future[None]] = []
        self._generation = 0
        self._latest: Optional[AppConcept] = None
        self._plan: Optional[DynamicPhasePlan] = None
        self._plan_generation = 0
        self._last_error: Optional[Exception] = None
        self._discarded = 0
        self._closed = False

    @classmethod
    def from_config(
        cls,
        settings: PhaseplanConfig,
        *,
        require_features: bool = False,
        on_plan: Optional[Callable[[DynamicPhasePlan], None]] = None,
    ) -> "PlanRegenerator":
        """Build a regenerator using the configured debounce window and planner limits."""
        generator = PhasePlanGenerator(settings.planning)

        def generate(concept: AppConcept) -> DynamicPhasePlan:
            return generator.generate(concept, require_features=require_features)

        return cls(
            generate,
            debounce_seconds=settings.regeneration.debounce_ms / 1000,
            on_plan=on_plan,
        )

    @property
    def debounce_seconds(self) -> float:
        return self._debounce

    @property
    def plan(self) -> Optional[DynamicPhasePlan]:
        with self._lock:
            return self._plan

    @property
    def plan_generation(self) -> int:
        """Generation counter of the snapshot the stored plan was computed from."""
        with self._lock:
            return self._plan_generation

    @property
    def last_error(self) -> Optional[Exception]:
        with self._lock:
            return self._last_error

    @property
    def discarded_results(self) -> int:
        with self._lock:
            return self._discarded

    def trigger(self, concept: AppConcept) -> int:
        """Capture ``concept`` and schedule a regeneration after the debounce window."""
        snapshot = concept.model_copy(deep=True)
        with self._lock:
            if self._closed:
                raise RuntimeError("PlanRegenerator is closed")
            self._generation += 1
            self._latest = snapshot
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self._debounce, self._submit, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            generation = self._generation
        timer.start()
        LOGGER.debug("Queued plan regeneration #%d", generation)
        return generation

    def _submit(self, generation: int) -> None:
        with self._lock:
            if self._closed or self._latest is None or generation != self._generation:
                return
            snapshot = self._latest
            self._timer = None
            future = self._executor.submit(self._run, generation, snapshot)
            self._futures = [item for item in self._futures if not item.done()]
            self._futures.append(future)

    def _run(self, generation: int, snapshot: AppConcept) -> None:
        with self._lock:
            if generation != self._generation:
                LOGGER.debug("Skipping superseded regeneration #%d", generation)
                return
        try:
            plan = self._generate(snapshot)
        except PhasePlanError as error:
            LOGGER.warning("Failed to regenerate plan #%d: %s", generation, error)
            self._record_error(generation, error)
            return
        except Exception as error:  # noqa: BLE001 - the worker future is never collected
            LOGGER.exception("Unexpected error regenerating plan #%d", generation)
            self._record_error(generation, error)
            return

        with self._lock:
            if generation != self._generation:
                self._discarded += 1
                LOGGER.debug("Discarding stale plan from regeneration #%d", generation)
                return
            self._plan = plan
            self._plan_generation = generation
            self._last_error = None
        if self._on_plan is not None:
            self._on_plan(plan)

    def _record_error(self, generation: int, error: Exception) -> None:
        with self._lock:
            if generation == self._generation:
                self._last_error = error

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no debounce timer or computation is pending."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                timer = self._timer
                futures = [item for item in self._futures if not item.done()]
            if timer is None and not futures:
                return True
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if remaining == 0.0:
                return False
            if timer is not None:
                timer.join(remaining)
            else:
                wait(futures, timeout=remaining)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "PlanRegenerator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
