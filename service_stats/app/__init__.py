"""
Statistics API service package.

The service answers demographic, crime, political and subvention queries at
country, department and commune granularity, backed by PostgreSQL and an
in-process read-through cache.

Structure:
- app.main: FastAPI app, lifecycle hooks, and wiring.
- app.adapters: relational data source client.
- app.caching: cache store, startup preloader and read-through decorator.
- app.routes: cache administration and statistics endpoints.
"""
