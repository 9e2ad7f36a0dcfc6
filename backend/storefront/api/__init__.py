"""API Layer - FastAPI routers, dependencies, and global error handlers.

Invariants:
    - All routes mounted under /api/v1
    - Routes delegate business logic to services/ and core/
"""
