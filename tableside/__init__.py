"""
                Tableside Ordering Backend

Multi-tenant restaurant ordering backend: table-side order placement,
kitchen status updates, real-time order event streams, reviews and
daily analytics.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
