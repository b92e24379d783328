"""
Hospital Service package for the Pet Hospital Access Layer.

This package serves hospital records from the origin document store through
a cache-aside layer. It provides:

- app.cache: Redis-backed cache with an in-memory fallback, TTL expiry and
  wildcard invalidation.
- app.hospitals: Hospital models, the origin store interface and the cached
  read/write paths.
- app.context: Process-wide wiring of config, logging, metrics and cache.

Guidelines:
- A cache failure must never fail a request; it only costs an origin read.
- Writes go to the origin store first, then invalidate cached views.
"""
