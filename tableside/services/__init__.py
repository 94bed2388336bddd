"""
                        Services Module

Business logic of the order subsystem. Pluggable collaborators follow
the factory pattern: an abstract base, one implementation per backend,
and a cached get_*() selecting the backend from configuration.

Services:
    - orders: order creation, status changes, projections
    - reviews: review intake and listings
    - analytics: daily aggregation and metrics queries
    - catalog: menu price lookups (sql, http, memory)
    - events: event bus (memory, redis) and subscription gateway
"""
