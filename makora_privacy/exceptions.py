"""
Makora Privacy - Exception Classes

Typed exceptions for the privacy layer. Precondition failures
(disabled features, full trees, malformed keys) raise; verification
outcomes (ownership checks, proof checks, note decryption) never do.

Each exception carries a structured ``details`` dict so the trading
agent can surface the underlying reason of a failed shield/unshield.
"""

from typing import Any


class MakoraPrivacyError(Exception):
    """Base exception for all privacy-layer errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error description.
            details: Optional structured details for debugging.
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, details={self.details})"


# =============================================================================
# CONFIGURATION & STATE ERRORS
# =============================================================================


class ConfigurationError(MakoraPrivacyError):
    """
    Raised when the privacy layer is misconfigured.

    Check environment variables and initialization parameters.
    """

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.config_key = config_key
        full_details = details or {}
        if config_key:
            full_details["config_key"] = config_key
        super().__init__(message, full_details)


class PrivacyDisabledError(MakoraPrivacyError):
    """Raised when a privacy operation is called while privacy is disabled."""

    def __init__(
        self,
        message: str = "Privacy features are disabled",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)


# =============================================================================
# STEALTH ADDRESS ERRORS
# =============================================================================


class StealthError(MakoraPrivacyError):
    """Base class for stealth address errors."""

    pass


class InvalidMetaAddressError(StealthError):
    """Raised when a stealth meta-address string cannot be decoded."""

    def __init__(
        self,
        encoded: str,
        reason: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.encoded = encoded
        self.reason = reason
        full_details = details or {}
        full_details["reason"] = reason
        super().__init__(f"Invalid stealth meta-address format: {reason}", full_details)


class InvalidAnnouncementError(StealthError):
    """Raised when a stealth announcement is not exactly 65 bytes."""

    def __init__(
        self,
        length: int,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.length = length
        full_details = details or {}
        full_details["length"] = length
        super().__init__(
            message or f"Invalid announcement length: expected 65 bytes, got {length}",
            full_details,
        )


class InvalidKeyError(StealthError):
    """
    Raised when key material has the wrong length or is not a valid
    curve point.
    """

    def __init__(
        self,
        name: str,
        expected: int | None = None,
        actual: int | None = None,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.name = name
        self.expected = expected
        self.actual = actual
        full_details = details or {}
        full_details["key"] = name
        if expected is not None:
            full_details["expected_length"] = expected
        if actual is not None:
            full_details["actual_length"] = actual
        default_msg = f"Invalid {name}"
        if expected is not None and actual is not None:
            default_msg = f"Invalid {name}: expected {expected} bytes, got {actual}"
        super().__init__(message or default_msg, full_details)


class ScannerNotInitializedError(StealthError):
    """Raised when scanning before ``initialize_scanner`` was called."""

    def __init__(
        self,
        message: str = "Scanner not initialized",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)


# =============================================================================
# SHIELDED NOTE & MERKLE TREE ERRORS
# =============================================================================


class ShieldedError(MakoraPrivacyError):
    """Base class for shielded note and commitment tree errors."""

    pass


class TreeFullError(ShieldedError):
    """Raised when inserting into a tree that holds ``2**depth`` leaves."""

    def __init__(
        self,
        capacity: int,
        message: str = "Tree is full",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.capacity = capacity
        full_details = details or {}
        full_details["capacity"] = capacity
        super().__init__(message, full_details)


class LeafNotFoundError(ShieldedError):
    """Raised when a proof is requested for an unset leaf index."""

    def __init__(
        self,
        leaf_index: int,
        message: str = "Leaf not found",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.leaf_index = leaf_index
        full_details = details or {}
        full_details["leaf_index"] = leaf_index
        super().__init__(message, full_details)


class LeafIndexOutOfBoundsError(ShieldedError):
    """Raised when ``insert_at`` targets an index outside the tree."""

    def __init__(
        self,
        leaf_index: int,
        capacity: int,
        message: str = "Index out of bounds",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.leaf_index = leaf_index
        self.capacity = capacity
        full_details = details or {}
        full_details["leaf_index"] = leaf_index
        full_details["capacity"] = capacity
        super().__init__(message, full_details)


class TreeNotInitializedError(ShieldedError):
    """Raised when the manager has no commitment tree."""

    def __init__(
        self,
        message: str = "Merkle tree not initialized",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)


class InsufficientNoteBalanceError(ShieldedError):
    """
    Raised when the input notes of a transfer cannot cover its outputs.

    The trading agent surfaces this as the reason for a failed unshield.
    """

    def __init__(
        self,
        required: int,
        available: int,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.required = required
        self.available = available
        default_msg = f"Insufficient note balance: need {required}, have {available}"
        full_details = details or {}
        full_details["required"] = required
        full_details["available"] = available
        super().__init__(message or default_msg, full_details)


# =============================================================================
# PROOF ERRORS
# =============================================================================


class ProofError(MakoraPrivacyError):
    """Base class for zero-knowledge proof errors."""

    pass


class ProverUnavailableError(ProofError):
    """
    Raised when no proving backend is installed.

    The message always tells the operator how to install one; the
    pipeline never fabricates a proof in its place.
    """

    def __init__(
        self,
        backend: str,
        remediation: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.backend = backend
        self.remediation = remediation
        full_details = details or {}
        full_details["backend"] = backend
        full_details["remediation"] = remediation
        default_msg = f"Proving backend '{backend}' is not available. {remediation}"
        super().__init__(message or default_msg, full_details)


class ProofGenerationError(ProofError):
    """
    Raised when Groth16 proof generation fails.

    This can occur due to:
    - Invalid witness data (wrong signal names or values)
    - Missing circuit artifacts
    - Malformed backend output
    """

    def __init__(
        self,
        message: str = "Failed to generate zero-knowledge proof.",
        phase: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize with proof generation context.

        Args:
            message: Description of the failure.
            phase: Which phase failed (initialize, prove, encode).
            details: Optional additional details.
        """
        self.phase = phase
        full_details = details or {}
        if phase:
            full_details["phase"] = phase
        super().__init__(message, full_details)


# =============================================================================
# NETWORK ERRORS
# =============================================================================


class NetworkError(MakoraPrivacyError):
    """Base class for chain transport errors."""

    pass


class RpcUnavailableError(NetworkError):
    """Raised when the Solana RPC endpoint cannot be reached."""

    def __init__(
        self,
        url: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.url = url
        full_details = details or {}
        full_details["rpc_url"] = url
        super().__init__(message or f"Solana RPC unavailable at {url}", full_details)


class RpcError(NetworkError):
    """Raised when the RPC endpoint answers with a JSON-RPC error object."""

    def __init__(
        self,
        code: int,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        full_details = details or {}
        full_details["rpc_code"] = code
        super().__init__(message, full_details)
