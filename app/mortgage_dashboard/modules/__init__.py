"""
Feature modules live under this package.

Each module owns its routes, models and service layer, and reuses the platform
primitives (auth context, RBAC, record store, DB session).
"""
