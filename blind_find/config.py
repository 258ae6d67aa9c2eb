"""
Cryptographic and runtime configuration for blind-find.

Module-level constants pin the group, the wire widths and the domain
separators. Runtime settings for the external prover are carried by an
explicit `CircuitConfig` value instead of process-global state.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from .exceptions import ConfigurationError

# ============================================================================
# CURVE SELECTION
# ============================================================================

# secp256k1 via petlib: prime order group, cofactor 1
CURVE_NAME = "secp256k1"
CURVE_LIBRARY = "petlib"
CURVE_NID = 714  # OpenSSL NID for secp256k1

# ============================================================================
# GROUP PARAMETERS
# ============================================================================

GROUP_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
GROUP_ORDER_BITS = 256
COFACTOR = 1

# Field prime, affine coordinates live in [0, FIELD_PRIME)
FIELD_PRIME = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F

# ============================================================================
# WIRE WIDTHS
# ============================================================================

SHORT_SIZE_BYTES = 2
SCALAR_SIZE_BYTES = 32
POINT_SIZE_BYTES = 33  # SEC1 compressed point
COORDINATE_SIZE_BYTES = 32

# TLV type tags for SMP messages 1-4
SMP_TLV_TYPES = {
    1: 2,
    2: 3,
    3: 4,
    4: 5,
}

# ============================================================================
# HASH FUNCTIONS AND DOMAIN SEPARATION
# ============================================================================

HASH_FUNCTION = "SHA256"
DOMAIN_SEPARATOR_PREFIX = b"BLIND_FIND_V1_"

DOMAIN_SEPARATORS = {
    "smp_secret": DOMAIN_SEPARATOR_PREFIX + b"SMP_SECRET",
    "smp_proof": DOMAIN_SEPARATOR_PREFIX + b"SMP_PROOF",
    "signature_nonce": DOMAIN_SEPARATOR_PREFIX + b"SIG_NONCE",
    "signature_challenge": DOMAIN_SEPARATOR_PREFIX + b"SIG_CHALLENGE",
    "register_hub": DOMAIN_SEPARATOR_PREFIX + b"REGISTER_NEW_HUB",
    "join_hub": DOMAIN_SEPARATOR_PREFIX + b"JOIN_HUB",
    "point": DOMAIN_SEPARATOR_PREFIX + b"POINT",
    "merkle_leaf": DOMAIN_SEPARATOR_PREFIX + b"MERKLE_LEAF",
    "merkle_node": DOMAIN_SEPARATOR_PREFIX + b"MERKLE_NODE",
}

# ============================================================================
# PUBLIC SIGNAL LAYOUT
# ============================================================================

PROOF_OF_SMP_NUM_SIGNALS = 39
PROOF_SUCCESSFUL_SMP_NUM_SIGNALS = 9

# Default depth of the hub registry tree
REGISTRY_TREE_LEVELS = 32

# ============================================================================
# RUNTIME CONFIGURATION
# ============================================================================

BLIND_FIND_DIR = Path.home() / ".blind_find"
DEFAULT_CONFIG_PATH = BLIND_FIND_DIR / "configs.yaml"
DEFAULT_BUILD_DIR = BLIND_FIND_DIR / "build"
DEFAULT_PROVER_TIMEOUT = 300.0


@dataclass(frozen=True)
class CircuitConfig:
    """
    Where and how the external zk-SNARK backend is reached.

    Attributes:
        proof_of_smp: Circuit name of the proof of SMP
        proof_successful_smp: Circuit name of the proof of successful SMP
        build_dir: Directory holding `<circuit>.wasm`, `<circuit>.zkey`
            and `<circuit>.vkey.json`
        snarkjs: Executable used to prove and verify
        timeout: Seconds allowed for a single prove/verify call
    """

    proof_of_smp: str = "proofOfSMP"
    proof_successful_smp: str = "proofSuccessfulSMP"
    build_dir: Path = DEFAULT_BUILD_DIR
    snarkjs: str = "snarkjs"
    timeout: float = DEFAULT_PROVER_TIMEOUT

    def __post_init__(self):
        if not isinstance(self.build_dir, Path):
            object.__setattr__(self, "build_dir", Path(self.build_dir))
        if self.timeout <= 0:
            raise ConfigurationError(
                f"timeout must be positive, got {self.timeout}"
            )
        for name in (self.proof_of_smp, self.proof_successful_smp):
            if not name or "/" in name:
                raise ConfigurationError(f"invalid circuit name: {name!r}")

    def wasm_path(self, circuit: str) -> Path:
        return self.build_dir / f"{circuit}.wasm"

    def zkey_path(self, circuit: str) -> Path:
        return self.build_dir / f"{circuit}.zkey"

    def vkey_path(self, circuit: str) -> Path:
        return self.build_dir / f"{circuit}.vkey.json"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CircuitConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(
                f"unknown circuit config keys: {sorted(unknown)}"
            )
        return cls(**dict(data))


def load_circuit_config(
    path: Optional[Union[str, Path]] = None,
) -> CircuitConfig:
    """
    Load a `CircuitConfig` from the `circuits` section of a YAML file.

    A missing default file yields the default configuration. A missing
    file that was asked for explicitly is an error.
    """
    explicit = path is not None
    config_path = Path(path) if explicit else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        if explicit:
            raise ConfigurationError(f"config file not found: {config_path}")
        return CircuitConfig()

    try:
        document = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"invalid YAML in {config_path}: {e}"
        ) from e

    if document is None:
        return CircuitConfig()
    if not isinstance(document, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping")

    section = document.get("circuits", {})
    if not isinstance(section, dict):
        raise ConfigurationError("'circuits' section must be a mapping")
    return CircuitConfig.from_mapping(section)


# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> bool:
    """
    Validate configuration parameters.

    Returns:
        True if configuration is valid

    Raises:
        AssertionError: If configuration is invalid
    """
    assert CURVE_NAME == "secp256k1", "Invalid curve"
    assert CURVE_LIBRARY == "petlib", "secp256k1 requires petlib library"
    assert CURVE_NID == 714, "secp256k1 NID must be 714"
    assert COFACTOR == 1, "secp256k1 must have cofactor 1"
    assert GROUP_ORDER.bit_length() <= SCALAR_SIZE_BYTES * 8, "Scalar too narrow"
    assert sorted(SMP_TLV_TYPES) == [1, 2, 3, 4], "Missing SMP TLV type"
    assert len(set(SMP_TLV_TYPES.values())) == 4, "Duplicate SMP TLV type"
    assert all(t < 2 ** (SHORT_SIZE_BYTES * 8) for t in SMP_TLV_TYPES.values())

    return True


# Auto-validate on import
validate_config()
