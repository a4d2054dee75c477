"""
backend/app/services/circuit_breaker.py

Purpose:
    Per-dependency circuit breaker. One instance per upstream dependency
    (enrichment provider, odds provider); state is tracked per key inside an
    instance (e.g. one circuit per sport family) and lives for the whole
    process. The breaker only advises callers whether to attempt a network
    call; it never retries.

    CLOSED -> OPEN once consecutive failures reach the threshold.
    OPEN -> HALF_OPEN when the cooldown has elapsed (checked lazily inside
    should_allow_request). HALF_OPEN admits exactly one trial call.
    HALF_OPEN -> CLOSED on trial success, -> OPEN on trial failure with the
    cooldown extended by the backoff factor (capped).

Dependencies:
    - threading (state lock, safe from both sync and async callers)
    - time (monotonic clock, injectable for tests)
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Callable

from app.services.errors import CircuitOpen

logger = logging.getLogger("matchintel.circuit_breaker")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitBreakerState:
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float | None = None
    cooldown_until: float | None = None
    current_cooldown: float = 0.0
    success_count: int = 0
    opened_count: int = 0
    trial_in_flight: bool = False
    trial_started_at: float | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


@dataclass(frozen=True)
class BreakerDecision:
    allowed: bool
    reason: str | None = None


class CircuitBreaker:
    """Keyed circuit breaker with half-open trial and cooldown backoff."""

    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int = 5,
        cooldown_seconds: float = 30.0,
        reset_window_seconds: float = 180.0,
        backoff_factor: float = 2.0,
        max_cooldown_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.reset_window_seconds = reset_window_seconds
        self.backoff_factor = max(1.0, backoff_factor)
        self.max_cooldown_seconds = max(cooldown_seconds, max_cooldown_seconds)
        self._clock = clock
        self._states: dict[str, CircuitBreakerState] = {}
        self._lock = threading.Lock()

    def _state_for(self, key: str) -> CircuitBreakerState:
        state = self._states.get(key)
        if state is None:
            state = CircuitBreakerState(current_cooldown=self.cooldown_seconds)
            self._states[key] = state
        return state

    def _transition(self, key: str, state: CircuitBreakerState, target: CircuitState, detail: str) -> None:
        previous = state.state
        state.state = target
        log = logger.warning if target == CircuitState.OPEN else logger.info
        log(
            "[%s] circuit %s: %s -> %s (%s)",
            self.name, key, previous.value, target.value, detail,
        )

    def _open(self, key: str, state: CircuitBreakerState, now: float, cooldown: float, detail: str) -> None:
        state.current_cooldown = min(cooldown, self.max_cooldown_seconds)
        state.cooldown_until = now + state.current_cooldown
        state.trial_in_flight = False
        state.trial_started_at = None
        state.opened_count += 1
        self._transition(key, state, CircuitState.OPEN, detail)

    def should_allow_request(self, key: str) -> BreakerDecision:
        with self._lock:
            state = self._state_for(key)
            now = self._clock()

            if state.state == CircuitState.CLOSED:
                return BreakerDecision(True)

            if state.state == CircuitState.OPEN:
                if state.cooldown_until is not None and now < state.cooldown_until:
                    remaining = state.cooldown_until - now
                    return BreakerDecision(
                        False, f"circuit open, retry in {remaining:.0f}s",
                    )
                self._transition(key, state, CircuitState.HALF_OPEN, "cooldown elapsed")

            # HALF_OPEN: exactly one trial at a time. A trial that never
            # reported back is abandoned after one cooldown period.
            if state.trial_in_flight and state.trial_started_at is not None:
                if now - state.trial_started_at < state.current_cooldown:
                    return BreakerDecision(False, "half-open trial in flight")
                logger.warning("[%s] circuit %s: abandoned half-open trial", self.name, key)
            state.trial_in_flight = True
            state.trial_started_at = now
            return BreakerDecision(True, "half-open trial")

    def ensure_allowed(self, key: str) -> BreakerDecision:
        """Like should_allow_request, but raises CircuitOpen on denial."""
        decision = self.should_allow_request(key)
        if not decision.allowed:
            raise CircuitOpen(self.name, decision.reason or "open")
        return decision

    def record_success(self, key: str) -> None:
        with self._lock:
            state = self._state_for(key)
            state.success_count += 1
            state.failure_count = 0
            if state.state != CircuitState.CLOSED:
                state.cooldown_until = None
                state.current_cooldown = self.cooldown_seconds
                state.trial_in_flight = False
                state.trial_started_at = None
                self._transition(key, state, CircuitState.CLOSED, "trial succeeded")

    def record_failure(self, key: str, cause: BaseException | str | None = None) -> None:
        with self._lock:
            state = self._state_for(key)
            now = self._clock()
            if cause is not None:
                state.last_error = str(cause) or type(cause).__name__

            if state.state == CircuitState.HALF_OPEN:
                state.failure_count += 1
                state.last_failure_time = now
                self._open(
                    key, state, now,
                    state.current_cooldown * self.backoff_factor,
                    "trial failed",
                )
                return

            if state.state == CircuitState.OPEN:
                # Late failure from a call started before the circuit opened.
                state.failure_count += 1
                state.last_failure_time = now
                return

            if (
                state.last_failure_time is not None
                and now - state.last_failure_time > self.reset_window_seconds
            ):
                state.failure_count = 0
            state.failure_count += 1
            state.last_failure_time = now
            if state.failure_count >= self.failure_threshold:
                self._open(
                    key, state, now, self.cooldown_seconds,
                    f"{state.failure_count} consecutive failures",
                )

    def get_state(self, key: str) -> CircuitBreakerState:
        """Return a snapshot copy of the state for ``key``."""
        with self._lock:
            state = self._state_for(key)
            return replace(state)

    def is_open(self, key: str) -> bool:
        with self._lock:
            state = self._states.get(key)
            return state is not None and state.state != CircuitState.CLOSED

    def all_states(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {key: state.to_dict() for key, state in self._states.items()}

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._states.clear()
            else:
                self._states.pop(key, None)
        logger.info("[%s] circuit %s reset", self.name, key or "*")


def circuit_health(*breakers: CircuitBreaker) -> dict[str, dict[str, Any]]:
    """Health snapshot for the given breakers, keyed by breaker name."""
    return {breaker.name: breaker.all_states() for breaker in breakers}
