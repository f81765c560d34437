"""Groth16 verification over BN254 for snarkjs-format keys and proofs.

One verification key per operation kind. A proof is accepted when

    e(A, B) == e(alpha, beta) * e(vk_x, gamma) * e(C, delta)

with ``vk_x = IC[0] + sum(x_i * IC[i + 1])`` over the public inputs.

Key JSON (snarkjs ``verification_key.json``)::

    {"protocol": "groth16", "curve": "bn128", "nPublic": n,
     "vk_alpha_1": [x, y, "1"], "vk_beta_2": [[x0, x1], [y0, y1], ["1", "0"]],
     "vk_gamma_2": ..., "vk_delta_2": ..., "IC": [[x, y, "1"], ...]}

Proof JSON: ``{"pi_a": G1, "pi_b": G2, "pi_c": G1}`` in the same encoding.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    FQ12,
    Z1,
    Z2,
    add,
    b,
    b2,
    curve_order,
    is_inf,
    is_on_curve,
    multiply,
    normalize,
    pairing,
)

from zylith.core.operations import PUBLIC_OUTPUT_COUNTS, OperationKind, check_public_inputs
from zylith.exceptions import ConfigurationError, InvalidProofError

logger = logging.getLogger(__name__)

# BN254 base field modulus (coordinates); the scalar field is ``curve_order``
BASE_FIELD_MODULUS = 21888242871839275222246405745257275088696311157297823662689037894645226208583

G1Point = Tuple[FQ, FQ, FQ]
G2Point = Tuple[FQ2, FQ2, FQ2]


def _coordinate(value: Any) -> int:
    number = int(value)
    if number < 0 or number >= BASE_FIELD_MODULUS:
        raise ValueError(f"Coordinate {number} is not a base field element")
    return number


def parse_g1(data: Sequence[Any]) -> G1Point:
    """
    Parse a snarkjs G1 point ``[x, y, z]`` (or ``[x, y]``).

    Raises:
        ValueError: If the encoding is malformed or the point is off the curve
    """
    if len(data) not in (2, 3):
        raise ValueError("G1 point must have 2 or 3 coordinates")
    x, y = _coordinate(data[0]), _coordinate(data[1])
    z = _coordinate(data[2]) if len(data) == 3 else 1
    if z == 0:
        return Z1
    point = (FQ(x), FQ(y), FQ(z))
    if not is_on_curve(point, b):
        raise ValueError("G1 point is not on the curve")
    return point


def parse_g2(data: Sequence[Sequence[Any]]) -> G2Point:
    """
    Parse a snarkjs G2 point ``[[x0, x1], [y0, y1], [z0, z1]]``.

    Raises:
        ValueError: If malformed, off the twist, or outside the r-torsion subgroup
    """
    if len(data) not in (2, 3):
        raise ValueError("G2 point must have 2 or 3 coordinates")
    coords = [[_coordinate(c) for c in pair] for pair in data]
    if any(len(pair) != 2 for pair in coords):
        raise ValueError("G2 coordinates are pairs")
    z = coords[2] if len(coords) == 3 else [1, 0]
    if z == [0, 0]:
        return Z2
    point = (FQ2(coords[0]), FQ2(coords[1]), FQ2(z))
    if not is_on_curve(point, b2):
        raise ValueError("G2 point is not on the twist")
    if not is_inf(multiply(point, curve_order)):
        raise ValueError("G2 point is not in the prime-order subgroup")
    return point


def g1_to_json(point: G1Point) -> List[str]:
    if is_inf(point):
        return ["0", "1", "0"]
    x, y = normalize(point)
    return [str(x.n), str(y.n), "1"]


def g2_to_json(point: G2Point) -> List[List[str]]:
    if is_inf(point):
        return [["0", "0"], ["1", "0"], ["0", "0"]]
    x, y = normalize(point)
    return [
        [str(int(c)) for c in x.coeffs],
        [str(int(c)) for c in y.coeffs],
        ["1", "0"],
    ]


@dataclass
class Groth16Proof:
    a: G1Point
    b: G2Point
    c: G1Point

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "Groth16Proof":
        """
        Build from snarkjs ``{"pi_a", "pi_b", "pi_c"}``.

        Raises:
            InvalidProofError: If any point is malformed
        """
        try:
            return cls(
                a=parse_g1(data["pi_a"]),
                b=parse_g2(data["pi_b"]),
                c=parse_g1(data["pi_c"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidProofError(f"Malformed proof: {e}") from e

    def to_json(self) -> Dict[str, Any]:
        return {
            "pi_a": g1_to_json(self.a),
            "pi_b": g2_to_json(self.b),
            "pi_c": g1_to_json(self.c),
            "protocol": "groth16",
            "curve": "bn128",
        }


class VerificationKey:
    """Parsed Groth16 verification key."""

    def __init__(
        self,
        alpha: G1Point,
        beta: G2Point,
        gamma: G2Point,
        delta: G2Point,
        ic: List[G1Point],
    ):
        if not ic:
            raise ConfigurationError("Verification key needs at least one IC point")
        self.alpha = alpha
        self.beta = beta
        self.gamma = gamma
        self.delta = delta
        self.ic = ic
        self._alpha_beta: Optional[FQ12] = None

    @property
    def n_public(self) -> int:
        return len(self.ic) - 1

    @property
    def alpha_beta(self) -> FQ12:
        """e(alpha, beta), computed once per key."""
        if self._alpha_beta is None:
            self._alpha_beta = pairing(self.beta, self.alpha)
        return self._alpha_beta

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "VerificationKey":
        """
        Parse a snarkjs verification key.

        Raises:
            ConfigurationError: If the key is not a well-formed bn128 Groth16 key
        """
        if data.get("protocol", "groth16") != "groth16":
            raise ConfigurationError(f"Unsupported protocol {data.get('protocol')!r}")
        if data.get("curve", "bn128") not in ("bn128", "bn254"):
            raise ConfigurationError(f"Unsupported curve {data.get('curve')!r}")
        try:
            key = cls(
                alpha=parse_g1(data["vk_alpha_1"]),
                beta=parse_g2(data["vk_beta_2"]),
                gamma=parse_g2(data["vk_gamma_2"]),
                delta=parse_g2(data["vk_delta_2"]),
                ic=[parse_g1(point) for point in data["IC"]],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Malformed verification key: {e}") from e
        if "nPublic" in data and int(data["nPublic"]) != key.n_public:
            raise ConfigurationError(
                f"nPublic={data['nPublic']} does not match {len(key.ic)} IC points"
            )
        return key

    def to_json(self) -> Dict[str, Any]:
        return {
            "protocol": "groth16",
            "curve": "bn128",
            "nPublic": self.n_public,
            "vk_alpha_1": g1_to_json(self.alpha),
            "vk_beta_2": g2_to_json(self.beta),
            "vk_gamma_2": g2_to_json(self.gamma),
            "vk_delta_2": g2_to_json(self.delta),
            "IC": [g1_to_json(point) for point in self.ic],
        }

    def verify(self, proof: Groth16Proof, public_inputs: Sequence[int]) -> bool:
        """Run the pairing check; inputs must already be scalar field elements."""
        if len(public_inputs) != self.n_public:
            return False
        vk_x = self.ic[0]
        for value, point in zip(public_inputs, self.ic[1:]):
            if value:
                vk_x = add(vk_x, multiply(point, value))
        lhs = pairing(proof.b, proof.a)
        rhs = self.alpha_beta * pairing(self.gamma, vk_x) * pairing(self.delta, proof.c)
        return lhs == rhs


ProofLike = Union[Groth16Proof, Mapping[str, Any]]


class Groth16Verifier:
    """
    Verification oracle backed by one Groth16 key per operation kind.

    Args:
        keys: Verification key per kind; kinds without a key reject every proof
    """

    def __init__(self, keys: Optional[Mapping[OperationKind, VerificationKey]] = None):
        self.keys: Dict[OperationKind, VerificationKey] = {}
        for kind, key in (keys or {}).items():
            self.set_key(kind, key)

    def set_key(self, kind: OperationKind, key: VerificationKey) -> None:
        kind = OperationKind(kind)
        if key.n_public != PUBLIC_OUTPUT_COUNTS[kind]:
            raise ConfigurationError(
                f"{kind.value} key has {key.n_public} public inputs, "
                f"expected {PUBLIC_OUTPUT_COUNTS[kind]}"
            )
        self.keys[kind] = key

    def verify(self, kind: OperationKind, proof: ProofLike, public_inputs: Sequence[int]) -> Tuple[int, ...]:
        """
        Verify ``proof`` for ``kind``.

        Returns:
            The public inputs, which are the operation's ordered outputs

        Raises:
            InvalidProofError: On any arity, range, encoding or pairing failure
        """
        kind = OperationKind(kind)
        key = self.keys.get(kind)
        if key is None:
            raise InvalidProofError(f"No verification key configured for {kind.value}")

        values = check_public_inputs(kind, public_inputs)
        if not isinstance(proof, Groth16Proof):
            proof = Groth16Proof.from_json(proof)

        if not key.verify(proof, values):
            logger.warning(f"Groth16 pairing check failed for {kind.value}")
            raise InvalidProofError(f"{kind.value} proof failed verification")
        return values


def load_verification_keys(directory: Union[str, Path]) -> Dict[OperationKind, VerificationKey]:
    """
    Load ``<kind>.json`` keys from a directory; missing files are skipped.

    Raises:
        ConfigurationError: If a present file is not a valid key
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise ConfigurationError(f"Verification key directory {directory} does not exist")

    keys = {}
    for kind in OperationKind:
        path = directory / f"{kind.value}.json"
        if not path.exists():
            logger.warning(f"No verification key for {kind.value} at {path}")
            continue
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"{path} is not valid JSON: {e}") from e
        keys[kind] = VerificationKey.from_json(data)
        logger.info(f"Loaded {kind.value} verification key from {path}")
    return keys
