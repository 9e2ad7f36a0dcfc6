"""Core Layer - pure storefront rules, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Functions are deterministic given their inputs (clocks are injected)

Design Decisions:
    - Functional core separated from the imperative shell: services load rows,
      ask core for a decision, then persist the outcome
"""
