"""
Conformance Test Suite

This suite defines the normative behavior of the daybook.

The tests are organized by invariant:
1. continuity.py - Month-to-month and year-to-year balance chaining
2. backward_scan.py - Year-end balance and inheritance
3. idempotency.py - At-most-once recording and materialization
4. clamping.py - Recurring dates and rule lifetimes

These tests use hypothesis for property-based testing.
"""
