"""secp256k1 engine used for key tweaking and Schnorr signatures.

Scalar and point tweaks plus BIP340 signing go through libsecp256k1 via
``coincurve``. Deriving a public point from a scalar uses ``cryptography``.
The rest of the package only talks to the :class:`ECEngine` protocol so tests
can substitute a stub.
"""

from __future__ import annotations

from typing import Protocol, Tuple

from coincurve import PrivateKey, PublicKey, PublicKeyXOnly
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric import ec

SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


class InvalidScalar(ValueError):
    """Raised when a scalar is zero or not below the curve order."""


class InvalidPoint(ValueError):
    """Raised when bytes do not describe a point on secp256k1."""


class ECEngine(Protocol):
    def scalar_add(self, a: bytes, b: bytes) -> bytes:
        ...

    def scalar_negate(self, a: bytes) -> bytes:
        ...

    def point_from_scalar(self, scalar: bytes, compressed: bool = True) -> bytes:
        ...

    def tweak_x_only(self, x_only: bytes, tweak: bytes) -> Tuple[bytes, int]:
        ...

    def schnorr_sign(self, digest: bytes, private_key: bytes) -> bytes:
        ...

    def schnorr_verify(self, digest: bytes, signature: bytes, x_only: bytes) -> bool:
        ...


def _scalar(raw: bytes) -> int:
    if len(raw) != 32:
        raise InvalidScalar(f"Scalar must be 32 bytes, got {len(raw)}")
    value = int.from_bytes(raw, "big")
    if not 0 < value < SECP256K1_ORDER:
        raise InvalidScalar("Scalar is outside the range 1..n-1")
    return value


def _check_tweak(tweak: bytes) -> int:
    # a tweak may legitimately be zero
    if len(tweak) != 32:
        raise InvalidScalar(f"Tweak must be 32 bytes, got {len(tweak)}")
    value = int.from_bytes(tweak, "big")
    if value >= SECP256K1_ORDER:
        raise InvalidScalar("Tweak is not below the curve order")
    return value


class Secp256k1Engine:
    """Default :class:`ECEngine` backed by ``coincurve`` and ``cryptography``."""

    def scalar_add(self, a: bytes, b: bytes) -> bytes:
        _scalar(a)
        if not _check_tweak(b):
            return bytes(a)
        try:
            return PrivateKey(bytes(a)).add(b).secret
        except ValueError as exc:
            raise InvalidScalar(f"Scalar sum is invalid: {exc}") from exc

    def scalar_negate(self, a: bytes) -> bytes:
        return (SECP256K1_ORDER - _scalar(a)).to_bytes(32, "big")

    def point_from_scalar(self, scalar: bytes, compressed: bool = True) -> bytes:
        private_key = ec.derive_private_key(_scalar(scalar), ec.SECP256K1(), default_backend())
        numbers = private_key.public_key().public_numbers()
        if compressed:
            return bytes([0x03 if numbers.y % 2 else 0x02]) + numbers.x.to_bytes(32, "big")
        return b"\x04" + numbers.x.to_bytes(32, "big") + numbers.y.to_bytes(32, "big")

    def tweak_x_only(self, x_only: bytes, tweak: bytes) -> Tuple[bytes, int]:
        """Compute ``lift_x(x_only) + tweak*G`` and return its x and y parity."""

        if len(x_only) != 32:
            raise InvalidPoint(f"X-only key must be 32 bytes, got {len(x_only)}")
        tweak_int = _check_tweak(tweak)
        try:
            # 0x02 prefix lifts x to the point with even y
            point = PublicKey(b"\x02" + x_only)
        except ValueError as exc:
            raise InvalidPoint(f"x-coordinate is not on the curve: {exc}") from exc
        if tweak_int:
            try:
                point = point.add(tweak)
            except ValueError as exc:
                raise InvalidPoint(f"Tweaked point is invalid: {exc}") from exc
        encoded = point.format(compressed=True)
        return encoded[1:], 1 if encoded[0] == 0x03 else 0

    def schnorr_sign(self, digest: bytes, private_key: bytes) -> bytes:
        if len(digest) != 32:
            raise ValueError(
                f"BIP-340 Schnorr sign requires a 32-byte digest, got {len(digest)} bytes"
            )
        _scalar(private_key)
        return PrivateKey(private_key).sign_schnorr(digest)

    def schnorr_verify(self, digest: bytes, signature: bytes, x_only: bytes) -> bool:
        try:
            return PublicKeyXOnly(x_only).verify(signature, digest)
        except ValueError:
            return False
