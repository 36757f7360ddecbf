"""BIP341 key tweaking for the output key and the key-path spend.

``Q = P + H_TapTweak(P || merkle_root) * G``. The public side is used to derive
the output key and address; the private side turns the internal private key
into the key that signs a key-path spend. Tweaked private material only lives
inside :func:`scoped_tweaked_key`, which wipes it on every exit path.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from .ecc import ECEngine, InvalidPoint, InvalidScalar, Secp256k1Engine
from .errors import InputValidationError, InvalidTweak
from .hashing import TAG_TAPTWEAK, tagged_hash

logger = logging.getLogger(__name__)

_DEFAULT_ENGINE = Secp256k1Engine()


def _check_inputs(internal_x: bytes, merkle_root: bytes) -> None:
    if len(internal_x) != 32:
        raise InputValidationError(f"Internal key must be 32 bytes, got {len(internal_x)}")
    if len(merkle_root) not in (0, 32):
        raise InputValidationError(
            f"Merkle root must be empty or 32 bytes, got {len(merkle_root)}"
        )


def tap_tweak(internal_x: bytes, merkle_root: bytes = b"") -> bytes:
    """Return ``TaggedHash("TapTweak", internal_x || merkle_root)``."""

    _check_inputs(internal_x, merkle_root)
    return tagged_hash(TAG_TAPTWEAK, internal_x + merkle_root)


def tweak_public(
    internal_x: bytes, merkle_root: bytes = b"", engine: ECEngine | None = None
) -> Tuple[bytes, int]:
    """Derive the x-only output key and its parity from a public internal key.

    Raises:
        InputValidationError: If the key or root has the wrong length
        InvalidTweak: If the tweak is out of range or the key is not on the curve
    """

    engine = engine or _DEFAULT_ENGINE
    tweak = tap_tweak(internal_x, merkle_root)
    try:
        output_x, parity = engine.tweak_x_only(internal_x, tweak)
    except (InvalidScalar, InvalidPoint) as exc:
        raise InvalidTweak(f"Cannot tweak internal key: {exc}") from exc
    logger.debug("Tweaked output key %s parity=%d", output_x.hex(), parity)
    return output_x, parity


@dataclass
class TweakedKeyMaterial:
    """Tweaked key pair for one key-path signature. Never persist this."""

    private_key: Optional[bytearray]
    public_key: bytes
    parity: int

    @property
    def x_only(self) -> bytes:
        return self.public_key[1:]

    def wipe(self) -> None:
        if self.private_key is not None:
            for i in range(len(self.private_key)):
                self.private_key[i] = 0
            self.private_key = None

    def __repr__(self) -> str:
        return f"TweakedKeyMaterial(public_key={self.public_key.hex()}, parity={self.parity})"


def tweak_private(
    private_key: bytes,
    internal_x: bytes,
    merkle_root: bytes = b"",
    engine: ECEngine | None = None,
) -> TweakedKeyMaterial:
    """Tweak an internal private key so it signs for the output key.

    The private scalar is negated first when its point has an odd Y, as BIP341
    prescribes, so the x-only of the result always matches :func:`tweak_public`.

    Raises:
        InputValidationError: If *private_key* does not belong to *internal_x*
        InvalidTweak: If the engine rejects the scalar sum
    """

    engine = engine or _DEFAULT_ENGINE
    if len(private_key) != 32:
        raise InputValidationError(f"Private key must be 32 bytes, got {len(private_key)}")
    tweak = tap_tweak(internal_x, merkle_root)
    try:
        internal_point = engine.point_from_scalar(bytes(private_key), True)
    except InvalidScalar as exc:
        raise InputValidationError(f"Invalid internal private key: {exc}") from exc
    if internal_point[1:] != internal_x:
        raise InputValidationError("Private key does not match the internal public key")
    secret = bytes(private_key)
    if internal_point[0] == 0x03:
        secret = engine.scalar_negate(secret)
    try:
        tweaked = engine.scalar_add(secret, tweak)
        tweaked_pub = engine.point_from_scalar(tweaked, True)
    except (InvalidScalar, InvalidPoint) as exc:
        raise InvalidTweak(f"Tweak produced an invalid private key: {exc}") from exc
    return TweakedKeyMaterial(
        private_key=bytearray(tweaked),
        public_key=tweaked_pub,
        parity=1 if tweaked_pub[0] == 0x03 else 0,
    )


@contextmanager
def scoped_tweaked_key(
    private_key: bytes,
    internal_x: bytes,
    merkle_root: bytes = b"",
    engine: ECEngine | None = None,
) -> Iterator[TweakedKeyMaterial]:
    """Yield tweaked key material and wipe the private scalar afterwards."""

    material = tweak_private(private_key, internal_x, merkle_root, engine)
    try:
        yield material
    finally:
        material.wipe()
