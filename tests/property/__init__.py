# tests/property/__init__.py
"""Property-based tests for appinsights.

Property-based testing validates invariants that must hold for ALL inputs,
not just the specific examples we think of. Telemetry must never be
duplicated, and rate arithmetic must never go negative or divide by zero.

Test categories:
- aggregation/: Duration parsing, rate computation, counter monotonicity
- channel/: Buffer ordering and exactly-once batching
"""
