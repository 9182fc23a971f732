"""Services package - business logic layer for Catalog Composer.

This package contains the service modules that provide business logic and
database operations for the catalog.

Architecture:
- Repositories: per-entity persistence classes (see ``repositories``)
- Services: composition, product, variation, backup and migration logic
- Transactions: managed via session_scope() context manager
- Exceptions: consistent error handling via the ServiceError hierarchy

Modules are imported directly (``from src.services.composition_service import
CompositionService``); nothing is re-exported here so models can import the
exception and scope modules without pulling in the services.
"""
