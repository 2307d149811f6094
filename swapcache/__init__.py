"""
swapcache: speculative trade precomputation and execution for Solana swaps.

Pre-builds unsigned swap transactions for the tracked token, keeps them fresh
against blockhash expiry, and executes from the cache with a single rebuild
fallback, submitting through Jito bundles with direct RPC fallback.
"""

__version__ = "0.1.0"
