"""
Store Service package for the storefront backend.

This package exposes the FastAPI application for the catalog, cart and
purchase API:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.supervision: Store connection supervisor and the availability gate.
- app.inventory: Atomic stock adjustments (purchase, restock).
- app.cart: Cart payload normalization and merge/replace semantics.
- app.catalog: Catalog listing, search and edits.
- app.auth: Bearer credential to role classification.
- app.persistence: PostgreSQL access via asyncpg.

Design notes:
- Module import must not perform network calls. The store connection is
  opened by the supervisor from the startup hook.
- Use the shared/ utilities for logging, metrics, config, and errors.
"""
