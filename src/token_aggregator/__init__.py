"""
Token Aggregator.

Merges Solana token market data from several upstream providers into one
canonical record per token, serves it through a cached query surface and
pushes change events to live feed listeners.
"""

__version__ = "0.1.0"
