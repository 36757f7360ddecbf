"""Error taxonomy shared by the commitment and spend planning layers."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INPUT_VALIDATION = "input_validation"
    PRECONDITION = "precondition"
    CRYPTO = "crypto"


class TaprootError(RuntimeError):
    """Base class for every failure raised by :mod:`tapvault`."""

    kind: ErrorKind = ErrorKind.INPUT_VALIDATION


class InputValidationError(TaprootError, ValueError):
    """Raised for malformed keys, scripts or leaf sets before any hashing."""

    kind = ErrorKind.INPUT_VALIDATION


class PreconditionFailure(TaprootError):
    """Raised when a spend request cannot be satisfied as supplied.

    Examples are an unreached lock height or the wrong number of threshold
    signatures. No witness is assembled once this has been raised.
    """

    kind = ErrorKind.PRECONDITION


class CryptoFailure(TaprootError):
    """Raised when the EC engine reports a degenerate result."""

    kind = ErrorKind.CRYPTO


class InvalidTweak(CryptoFailure):
    """Raised when a tweak yields an out-of-range scalar or the point at infinity."""


class SigningFailure(CryptoFailure):
    """Raised when the Schnorr signer cannot produce a signature."""
