"""Infrastructure Layer - database manager, logging setup, security primitives, payment gateway.

Invariants:
    - Every external failure is mapped to a StorefrontError subclass before leaving this layer
"""
