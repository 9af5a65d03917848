"""
Client module for the relay API.

Typed helpers over httpx for fetching counters and fees and submitting
signed payment requests.
"""

from .http_client import RelayClient, RelayRequestError

__all__ = ["RelayClient", "RelayRequestError"]
