from helpdesk.resilience.circuit_breaker import BreakerState, BreakerTransition, CircuitBreaker, Permit
from helpdesk.resilience.fallbacks import TicketOutbox, build_registry
from helpdesk.resilience.registry import BreakerRegistry

__all__ = [
    "BreakerRegistry",
    "BreakerState",
    "BreakerTransition",
    "CircuitBreaker",
    "Permit",
    "TicketOutbox",
    "build_registry",
]
