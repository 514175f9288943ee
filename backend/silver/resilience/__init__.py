"""
Resilience layer — failure isolation for document reads and store writes.

    classification.py    — retriable vs. permanent errors
    circuit_breaker.py   — CircuitBreaker state machine + presets
    registry.py          — CircuitBreakerRegistry (one breaker per resource)
"""
