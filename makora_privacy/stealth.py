"""
Makora Privacy - Stealth Addresses

Dual-key stealth addresses over Ed25519/X25519:

- The recipient publishes a meta-address (K, V): an Ed25519 spending
  key and an X25519 viewing key.
- The sender draws an ephemeral X25519 key r, computes the shared
  secret s = ECDH(r, V) and pays to P = K + H(s)*G.
- The recipient recomputes s = ECDH(v, R) and spends with
  p = k + H(s) mod l, where p*G == P.

Usage:
    meta = generate_stealth_meta_address(spending, viewing)
    stealth = generate_stealth_address(meta.encoded)
    announcement = create_stealth_announcement(
        stealth.address, stealth.ephemeral_pub_key, stealth.view_tag
    )
"""

from __future__ import annotations

import hashlib
import logging

import base58
import nacl.bindings
import nacl.exceptions
import nacl.public

from .exceptions import (
    InvalidAnnouncementError,
    InvalidKeyError,
    InvalidMetaAddressError,
    StealthError,
)
from .keys import (
    KEY_BYTES,
    SpendingKeypair,
    StealthKeypair,
    ViewingKeypair,
    reduce_scalar,
    spending_scalar_from_secret,
)
from .models import StealthAddress, StealthAnnouncement, StealthMetaAddress

logger = logging.getLogger("makora_privacy")

META_ADDRESS_PREFIX = "st"
ANNOUNCEMENT_LENGTH = 1 + KEY_BYTES + KEY_BYTES

_BLINDING_DOMAIN = b"makora-stealth-blinding-v1"

KeyLike = bytes | str


# =============================================================================
# META-ADDRESSES
# =============================================================================


def generate_stealth_meta_address(
    spending_keypair: SpendingKeypair,
    viewing_keypair: ViewingKeypair,
) -> StealthMetaAddress:
    """
    Build a stealth meta-address from spending and viewing keypairs.

    Args:
        spending_keypair: Ed25519 keypair; private half stays with the recipient.
        viewing_keypair: X25519 keypair used for scanning.

    Returns:
        The meta-address to publish.
    """
    spending_pub = spending_keypair.public_key
    viewing_pub = viewing_keypair.public_key
    return StealthMetaAddress(
        spending_pub_key=spending_pub,
        viewing_pub_key=viewing_pub,
        encoded=encode_stealth_meta_address(spending_pub, viewing_pub),
    )


def encode_stealth_meta_address(spending_pub_key: bytes, viewing_pub_key: bytes) -> str:
    """Encode as ``st:<base58(spending)>:<base58(viewing)>``."""
    _require_length("spending public key", spending_pub_key)
    _require_length("viewing public key", viewing_pub_key)
    spending_b58 = base58.b58encode(spending_pub_key).decode("ascii")
    viewing_b58 = base58.b58encode(viewing_pub_key).decode("ascii")
    return f"{META_ADDRESS_PREFIX}:{spending_b58}:{viewing_b58}"


def parse_stealth_meta_address(encoded: str) -> StealthMetaAddress:
    """
    Parse an encoded stealth meta-address.

    Raises:
        InvalidMetaAddressError: If the tag, part count, base58 payload
            or key lengths are wrong.
    """
    parts = encoded.split(":")
    if len(parts) != 3 or parts[0] != META_ADDRESS_PREFIX:
        raise InvalidMetaAddressError(encoded, "expected 'st:<spending>:<viewing>'")

    try:
        spending_pub = base58.b58decode(parts[1])
        viewing_pub = base58.b58decode(parts[2])
    except ValueError as e:
        raise InvalidMetaAddressError(encoded, f"bad base58 payload ({e})") from e

    if len(spending_pub) != KEY_BYTES or len(viewing_pub) != KEY_BYTES:
        raise InvalidMetaAddressError(encoded, "public keys must be 32 bytes")

    return StealthMetaAddress(
        spending_pub_key=spending_pub,
        viewing_pub_key=viewing_pub,
        encoded=encoded,
    )


# =============================================================================
# SENDER SIDE
# =============================================================================


def generate_stealth_address(recipient_meta: StealthMetaAddress | str) -> StealthAddress:
    """
    Generate a fresh one-time stealth address for a single payment.

    A new ephemeral key is drawn on every call. Reusing an ephemeral key
    for two payments links them; callers must not do that.

    Args:
        recipient_meta: Meta-address model or its encoded string.

    Returns:
        StealthAddress including the sender-only ``ephemeral_private_key``.
    """
    meta = (
        parse_stealth_meta_address(recipient_meta)
        if isinstance(recipient_meta, str)
        else recipient_meta
    )

    ephemeral = nacl.public.PrivateKey.generate()
    stealth_pub, ephemeral_pub, view_tag = derive_stealth_public_key(meta, bytes(ephemeral))

    logger.debug(f"Derived stealth address with view tag {view_tag}")

    return StealthAddress(
        address=stealth_pub,
        ephemeral_pub_key=ephemeral_pub,
        view_tag=view_tag,
        ephemeral_private_key=bytes(ephemeral),
    )


def derive_stealth_public_key(
    recipient_meta: StealthMetaAddress,
    ephemeral_private_key: bytes,
) -> tuple[bytes, bytes, int]:
    """
    Derive the stealth public key for a recipient (sender side).

    Args:
        recipient_meta: Recipient's meta-address.
        ephemeral_private_key: Sender's 32-byte X25519 ephemeral key.

    Returns:
        ``(stealth_pub_key, ephemeral_pub_key, view_tag)``.

    Raises:
        InvalidKeyError: If a key has the wrong length or the spending key
            is not a valid Ed25519 point.
        StealthError: If the key agreement fails.
    """
    _require_length("ephemeral private key", ephemeral_private_key)
    _require_point("spending public key", recipient_meta.spending_pub_key)

    try:
        ephemeral_pub = nacl.bindings.crypto_scalarmult_base(ephemeral_private_key)
        shared_secret = compute_shared_secret(
            ephemeral_private_key, recipient_meta.viewing_pub_key
        )
        stealth_pub = blind_public_key(recipient_meta.spending_pub_key, shared_secret)
    except nacl.exceptions.CryptoError as e:
        raise StealthError(f"Failed to derive stealth public key: {e}") from e

    return stealth_pub, ephemeral_pub, compute_view_tag(shared_secret)


# =============================================================================
# RECIPIENT SIDE
# =============================================================================


def derive_stealth_private_key(
    spending_private_key: SpendingKeypair | bytes,
    viewing_private_key: ViewingKeypair | bytes,
    ephemeral_pub_key: bytes,
) -> StealthKeypair:
    """
    Recover spending authority over a stealth address (recipient side).

    ``derive_stealth_private_key(k, v, R).public_key`` equals the address
    the sender derived from (K, V) with ephemeral key r, R = r*G.

    Args:
        spending_private_key: Spending keypair, 32-byte seed or 64-byte
            Solana secret key.
        viewing_private_key: Viewing keypair or 32-byte X25519 private key.
        ephemeral_pub_key: Ephemeral public key from the announcement.

    Raises:
        InvalidKeyError: On wrong-length keys.
        StealthError: If the key agreement fails.
    """
    if isinstance(spending_private_key, SpendingKeypair):
        spending_scalar = spending_private_key.scalar
    else:
        spending_scalar = spending_scalar_from_secret(spending_private_key)
    viewing_priv = _viewing_bytes(viewing_private_key)
    _require_length("ephemeral public key", ephemeral_pub_key)

    try:
        shared_secret = compute_shared_secret(viewing_priv, ephemeral_pub_key)
        stealth_scalar = nacl.bindings.crypto_core_ed25519_scalar_add(
            spending_scalar, blinding_scalar(shared_secret)
        )
        return StealthKeypair.from_scalar(stealth_scalar)
    except nacl.exceptions.CryptoError as e:
        raise StealthError(f"Failed to derive stealth private key: {e}") from e


def verify_stealth_ownership(
    stealth_address: KeyLike,
    ephemeral_pub_key: bytes,
    viewing_private_key: ViewingKeypair | bytes,
    spending_pub_key: bytes,
    view_tag: int | None = None,
) -> bool:
    """
    Check whether a stealth address belongs to the holder of a viewing key.

    Never raises: malformed inputs simply do not verify, so a scan loop
    can continue past a bad announcement.

    Args:
        stealth_address: Candidate address (bytes or base58 string).
        ephemeral_pub_key: Ephemeral public key from the announcement.
        viewing_private_key: Recipient's viewing key.
        spending_pub_key: Recipient's spending public key.
        view_tag: Optional tag; a mismatch rejects before blinding.
    """
    try:
        address = _key_bytes("stealth address", stealth_address)
        shared_secret = compute_shared_secret(
            _viewing_bytes(viewing_private_key), ephemeral_pub_key
        )
        if view_tag is not None and compute_view_tag(shared_secret) != view_tag:
            return False
        _require_point("spending public key", spending_pub_key)
        expected = blind_public_key(spending_pub_key, shared_secret)
    except (StealthError, nacl.exceptions.CryptoError, ValueError, TypeError):
        return False

    return expected == address


# =============================================================================
# ANNOUNCEMENTS
# =============================================================================


def create_stealth_announcement(
    stealth_address: KeyLike,
    ephemeral_pub_key: bytes,
    view_tag: int,
) -> bytes:
    """
    Build the 65-byte announcement published on-chain.

    Layout: ``view_tag (1) || ephemeral_pub_key (32) || stealth_address (32)``.
    """
    address = _key_bytes("stealth address", stealth_address)
    _require_length("ephemeral public key", ephemeral_pub_key)
    if not 0 <= view_tag <= 255:
        raise ValueError(f"View tag must fit in one byte: {view_tag}")
    return bytes([view_tag]) + bytes(ephemeral_pub_key) + address


def parse_stealth_announcement(announcement: bytes) -> StealthAnnouncement:
    """
    Decode a 65-byte announcement.

    Raises:
        InvalidAnnouncementError: If the input is not exactly 65 bytes.
    """
    if len(announcement) != ANNOUNCEMENT_LENGTH:
        raise InvalidAnnouncementError(len(announcement))

    return StealthAnnouncement(
        view_tag=announcement[0],
        ephemeral_pub_key=bytes(announcement[1:33]),
        stealth_address=bytes(announcement[33:65]),
    )


# =============================================================================
# PRIMITIVES
# =============================================================================


def compute_shared_secret(private_key: bytes, public_key: bytes) -> bytes:
    """X25519 key agreement."""
    _require_length("private key", private_key)
    _require_length("public key", public_key)
    return nacl.bindings.crypto_scalarmult(bytes(private_key), bytes(public_key))


def compute_view_tag(shared_secret: bytes) -> int:
    """First byte of SHA-256 of the shared secret."""
    return hashlib.sha256(shared_secret).digest()[0]


def blinding_scalar(shared_secret: bytes) -> bytes:
    """Hash the shared secret to a scalar modulo the Ed25519 group order."""
    return reduce_scalar(hashlib.sha512(_BLINDING_DOMAIN + shared_secret).digest())


def blind_public_key(spending_pub_key: bytes, shared_secret: bytes) -> bytes:
    """Compute ``K + H(s)*G`` with real Ed25519 point addition."""
    offset = nacl.bindings.crypto_scalarmult_ed25519_base_noclamp(blinding_scalar(shared_secret))
    return nacl.bindings.crypto_core_ed25519_add(bytes(spending_pub_key), offset)


def _require_length(name: str, value: bytes, expected: int = KEY_BYTES) -> None:
    if len(value) != expected:
        raise InvalidKeyError(name, expected=expected, actual=len(value))


def _require_point(name: str, value: bytes) -> None:
    _require_length(name, value)
    if not nacl.bindings.crypto_core_ed25519_is_valid_point(bytes(value)):
        raise InvalidKeyError(name, message=f"Invalid {name}: not an Ed25519 point")


def _key_bytes(name: str, value: KeyLike) -> bytes:
    if isinstance(value, str):
        value = base58.b58decode(value)
    _require_length(name, value)
    return bytes(value)


def _viewing_bytes(viewing_private_key: ViewingKeypair | bytes) -> bytes:
    if isinstance(viewing_private_key, ViewingKeypair):
        return viewing_private_key.private_key
    _require_length("viewing private key", viewing_private_key)
    return bytes(viewing_private_key)
