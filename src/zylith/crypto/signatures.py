"""Ed25519 signatures for administrative root publication.

A published root is authenticated by an Ed25519 signature made with the root
publisher's key over ``sha256(b"zylith.root:" + pool_id + b":" + root)``, the
root taken as its 32-byte big-endian encoding. The pool id is part of the
message, so a signature only ever admits its root into one pool.
"""

from typing import Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from zylith.exceptions import ConfigurationError, UnauthorizedError
from zylith.utils.encoding import bytes_to_hex, field_to_bytes, hex_to_bytes
from zylith.utils.hash import sha256

ROOT_DOMAIN = b"zylith.root:"


def root_message(pool_id: str, root: int) -> bytes:
    """Digest signed when publishing ``root`` to ``pool_id``."""
    return sha256(ROOT_DOMAIN + pool_id.encode("utf-8") + b":" + field_to_bytes(root))


def load_public_key(key: Union[str, bytes]) -> Ed25519PublicKey:
    """
    Load a raw 32-byte Ed25519 public key given as bytes or hex.

    Raises:
        ConfigurationError: If the key is malformed
    """
    try:
        raw = hex_to_bytes(key) if isinstance(key, str) else key
        return Ed25519PublicKey.from_public_bytes(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid Ed25519 public key: {e}") from e


def verify_root_signature(
    public_key: Ed25519PublicKey, pool_id: str, root: int, signature: Union[str, bytes]
) -> None:
    """
    Check a root publication signature for one pool.

    Raises:
        UnauthorizedError: If the signature does not verify
    """
    try:
        raw = hex_to_bytes(signature) if isinstance(signature, str) else signature
        public_key.verify(raw, root_message(pool_id, root))
    except (InvalidSignature, ValueError) as e:
        raise UnauthorizedError("Root signature is not from the root publisher") from e


class RootPublisher:
    """
    Holder of the root publication signing key.

    Args:
        private_key: Optional raw 32-byte Ed25519 seed; a new key is generated if omitted
    """

    def __init__(self, private_key: Optional[bytes] = None):
        if private_key is None:
            self._private_key = Ed25519PrivateKey.generate()
        else:
            try:
                self._private_key = Ed25519PrivateKey.from_private_bytes(private_key)
            except ValueError as e:
                raise ConfigurationError(f"Invalid Ed25519 private key: {e}") from e

    @property
    def public_key(self) -> Ed25519PublicKey:
        return self._private_key.public_key()

    @property
    def public_key_hex(self) -> str:
        raw = self.public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return bytes_to_hex(raw)

    def sign_root(self, pool_id: str, root: int) -> bytes:
        """Sign ``root`` for publication to ``pool_id``."""
        return self._private_key.sign(root_message(pool_id, root))
