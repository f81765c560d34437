"""Pool controller, token interface and pool identity."""

from zylith.pool.key import PoolKey
from zylith.pool.token import InMemoryToken, Token
from zylith.pool.controller import SHIELDED_OWNER, PoolController

__all__ = [
    "PoolKey",
    "InMemoryToken",
    "Token",
    "SHIELDED_OWNER",
    "PoolController",
]
