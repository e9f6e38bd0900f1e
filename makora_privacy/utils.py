"""
Makora Privacy - Utility Functions

Helper functions for:
- Structured, redacted logging of privacy operations
- Amount and URL validation
"""

import logging

logger = logging.getLogger("makora_privacy")

U64_MAX = 2**64 - 1


# =============================================================================
# LOGGING UTILITIES
# =============================================================================


class PrivacyLogger:
    """
    Structured logger for privacy operations.

    Key material is never logged; public values (addresses,
    commitments, roots) are truncated to a short prefix.
    """

    def __init__(self, logger_name: str = "makora_privacy.events") -> None:
        self.logger = logging.getLogger(logger_name)

    def log_stealth_address_derived(self, stealth_address: bytes, view_tag: int) -> None:
        """Log a one-time address generated for an outgoing payment."""
        self.logger.info(
            "Stealth address derived",
            extra={
                "event": "stealth_address_derived",
                "stealth_address": redact(stealth_address),
                "view_tag": view_tag,
            },
        )

    def log_payment_detected(self, stealth_address: bytes, amount: int, signature: str) -> None:
        """Log an incoming stealth payment."""
        self.logger.info(
            "Stealth payment detected",
            extra={
                "event": "payment_detected",
                "stealth_address": redact(stealth_address),
                "amount": amount,
                "signature": signature[:8] + "...",
            },
        )

    def log_scan_complete(self, scanned: int, matched: int, last_slot: int) -> None:
        """Log the outcome of a scan pass."""
        self.logger.info(
            "Stealth scan complete",
            extra={
                "event": "scan_complete",
                "announcements_scanned": scanned,
                "payments_matched": matched,
                "last_scanned_slot": last_slot,
            },
        )

    def log_note_inserted(self, commitment: int, leaf_index: int, root: int) -> None:
        """Log a commitment insertion."""
        self.logger.info(
            "Note commitment inserted",
            extra={
                "event": "note_inserted",
                "commitment": redact(commitment),
                "leaf_index": leaf_index,
                "root": redact(root),
            },
        )

    def log_tree_imported(self, leaf_count: int, depth: int, root: int) -> None:
        """Log a tree state import."""
        self.logger.info(
            "Merkle tree imported",
            extra={
                "event": "tree_imported",
                "leaf_count": leaf_count,
                "depth": depth,
                "root": redact(root),
            },
        )

    def log_proof_requested(self, merkle_root: int, public_amount: int) -> None:
        """Log a proof request."""
        self.logger.info(
            "Transfer proof requested",
            extra={
                "event": "proof_requested",
                "merkle_root": redact(merkle_root),
                "public_amount": public_amount,
            },
        )

    def log_proof_generated(self, public_signal_count: int) -> None:
        """Log a generated proof."""
        self.logger.info(
            "Transfer proof generated",
            extra={"event": "proof_generated", "public_signals": public_signal_count},
        )

    def log_proof_failure(self, error: str, phase: str | None = None) -> None:
        """Log a proof failure."""
        self.logger.warning(
            "Transfer proof failed",
            extra={"event": "proof_failed", "error": error, "phase": phase},
        )


def redact(value: bytes | int | str) -> str:
    """Shorten a public value to an 8-character prefix for logs."""
    if isinstance(value, bytes):
        text = value.hex()
    elif isinstance(value, int):
        text = format(value, "x")
    else:
        text = value
    return text[:8] + "..." if len(text) > 8 else text


# =============================================================================
# VALIDATION UTILITIES
# =============================================================================


def validate_amount(amount: int, max_amount: int | None = None) -> None:
    """
    Validate a note or transfer amount in base units.

    Args:
        amount: Amount to validate.
        max_amount: Optional maximum allowed amount.

    Raises:
        ValueError: If amount is not a u64 or exceeds the maximum.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Amount must be an integer number of base units: {amount!r}")

    if amount < 0:
        raise ValueError(f"Amount cannot be negative: {amount}")

    if amount > U64_MAX:
        raise ValueError(f"Amount does not fit in u64: {amount}")

    if max_amount is not None and amount > max_amount:
        raise ValueError(f"Amount {amount} exceeds maximum {max_amount}")


def validate_rpc_url(url: str) -> str:
    """
    Validate and normalize an RPC URL.

    Raises:
        ValueError: If URL is invalid.
    """
    if not url:
        raise ValueError("RPC URL cannot be empty")

    url = url.rstrip("/")

    if not url.startswith(("http://", "https://")):
        raise ValueError(f"Invalid URL scheme: {url}")

    return url
