"""Cryptographic primitives module"""

from zylith.crypto.poseidon import poseidon
from zylith.crypto.signatures import RootPublisher, load_public_key, verify_root_signature

__all__ = [
    "poseidon",
    "RootPublisher",
    "load_public_key",
    "verify_root_signature",
]
