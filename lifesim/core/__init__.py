"""Life-progression and mortality engine (stats, aging, mortality, relationships).

Kept free of FastAPI and Redis concerns so it can be reused by API routes, CLI, and tests.
"""
