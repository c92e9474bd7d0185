"""
Breaker registry: every call to an external collaborator goes through here.

Each dependency is registered with its deadline, breaker settings and a
mandatory fallback. ``call()`` never lets a dependency failure escape:
timeouts, errors and open circuits all resolve to the fallback, which
returns a degraded value or raises a typed degradation error of its own.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from helpdesk.config import DependencyConfig
from helpdesk.errors import CircuitOpenError
from helpdesk.logging_context import get_turn_logger
from helpdesk.resilience.circuit_breaker import BreakerState, BreakerTransition, CircuitBreaker

logger = get_turn_logger(__name__)

Fallback = Callable[..., Any]
TransitionListener = Callable[[BreakerTransition], None]


@dataclass
class _Dependency:
    config: DependencyConfig
    breaker: CircuitBreaker
    fallback: Fallback


class BreakerRegistry:
    """Per-dependency breakers, deadlines and fallbacks."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._dependencies: dict[str, _Dependency] = {}
        self._listeners: list[TransitionListener] = []

    def register(self, config: DependencyConfig, fallback: Fallback) -> CircuitBreaker:
        """Register a dependency; the fallback is required."""
        if fallback is None:
            raise ValueError(f"Dependency '{config.name}' must be registered with a fallback")
        if config.name in self._dependencies:
            raise ValueError(f"Dependency '{config.name}' is already registered")
        breaker = CircuitBreaker(config, clock=self._clock, on_transition=self._emit)
        self._dependencies[config.name] = _Dependency(config, breaker, fallback)
        logger.debug("Dependency registered: %s (timeout %dms)", config.name, config.timeout_ms)
        return breaker

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def breaker(self, name: str) -> CircuitBreaker:
        return self._get(name).breaker

    def is_open(self, name: str) -> bool:
        return self._get(name).breaker.state == BreakerState.OPEN

    def registered(self) -> list[str]:
        return list(self._dependencies.keys())

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Return a lightweight per-dependency snapshot for diagnostics."""
        return {name: dep.breaker.snapshot() for name, dep in self._dependencies.items()}

    async def call(
        self,
        name: str,
        operation: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Invoke ``operation`` under the dependency's deadline and breaker."""
        dep = self._get(name)
        breaker = dep.breaker
        permit = breaker.allow_request()
        if permit is None:
            logger.warning("Circuit for '%s' is %s; using fallback", name, breaker.state.value)
            return await self._fallback(dep, CircuitOpenError(name), args, kwargs)

        try:
            result = await asyncio.wait_for(
                operation(*args, **kwargs), timeout=dep.config.timeout_sec
            )
        except asyncio.CancelledError:
            breaker.release_trial(permit)
            raise
        except asyncio.TimeoutError as exc:
            breaker.record_failure(permit)
            logger.warning(
                "Call to '%s' exceeded %dms deadline; using fallback",
                name, dep.config.timeout_ms,
            )
            return await self._fallback(dep, exc, args, kwargs)
        except Exception as exc:
            breaker.record_failure(permit)
            logger.warning("Call to '%s' failed (%s); using fallback", name, exc)
            return await self._fallback(dep, exc, args, kwargs)

        breaker.record_success(permit)
        return result

    def _get(self, name: str) -> _Dependency:
        if name not in self._dependencies:
            registered = list(self._dependencies.keys())
            raise KeyError(f"Dependency '{name}' not registered. Available: {registered}")
        return self._dependencies[name]

    async def _fallback(
        self,
        dep: _Dependency,
        error: BaseException,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> Any:
        logger.debug("Fallback for '%s' after %s", dep.config.name, type(error).__name__)
        result = dep.fallback(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _emit(self, event: BreakerTransition) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Breaker listener failed for '%s'", event.dependency)
