"""
Remote task service access: OAuth token handling and the REST client.
"""

from pomosync.remote.auth import TokenManager
from pomosync.remote.client import RemoteTaskClient

__all__ = [
    "RemoteTaskClient",
    "TokenManager",
]
