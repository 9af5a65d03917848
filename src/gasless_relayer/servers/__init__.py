from .apps import RelayServer, http_status_for

__all__ = [
    "RelayServer",
    "http_status_for",
]
