"""Service Layer - orchestrates DB reads/writes around the pure core rules.

Invariants:
    - Services take an AsyncSession and never commit on behalf of a failed operation
    - Domain failures are raised as StorefrontError subclasses, never HTTPException
"""
