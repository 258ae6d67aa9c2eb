"""
Custom exceptions for the blind-find protocol engine.

These exceptions provide structured error handling for the SMP exchange,
the wire codec and the proof composition layer.
"""


class BlindFindError(Exception):
    """Base exception for blind-find errors."""

    pass


class ProtocolViolation(BlindFindError):
    """A peer sent a message that is illegal for the current SMP state.

    Covers wrong message types, malformed TLV records, length mismatches
    and failed proof checks inside `SMPStateMachine.transit`.
    """

    pass


class MalformedInput(BlindFindError):
    """Input could not be decoded (bad point, bad signal vector, bad registry)."""

    pass


class InvalidProof(BlindFindError):
    """A proof does not verify."""

    pass


class SMPNotFinished(BlindFindError):
    """The SMP result was requested before the exchange finished."""

    pass


class ConfigurationError(BlindFindError):
    """Configuration error."""

    pass


class CryptographicError(BlindFindError):
    """Cryptographic operation error."""

    pass


class ProofGenerationError(BlindFindError):
    """Error during proof generation."""

    pass


class ProofVerificationError(BlindFindError):
    """Error during proof verification."""

    pass
