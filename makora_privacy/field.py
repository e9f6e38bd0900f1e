"""
Makora Privacy - Field Element Codec

Fixed 32-byte big-endian encoding between integers and the BN254
scalar field used by the transfer circuit. Every value is reduced
modulo the field order at this boundary so that commitments, tree
nodes and circuit inputs are always valid witnesses.
"""

import hashlib
import secrets

# BN254 (alt_bn128) scalar field order: the circuit's arithmetic field.
FIELD_MODULUS = 0x30644E72E131A029B85045B68181585D2833E84879B9709143E1F593F0000001

# BN254 base field order: Groth16 proof point coordinates live here.
BASE_FIELD_MODULUS = 0x30644E72E131A029B85045B68181585D97816A916871CA8D3C208C16D87CFD47

FIELD_BYTES = 32


def field_to_bytes(value: int, modulus: int = FIELD_MODULUS) -> bytes:
    """
    Encode a field element as 32 big-endian bytes.

    Args:
        value: Integer to encode; reduced modulo ``modulus`` first.
        modulus: Field order to reduce by.

    Returns:
        32-byte big-endian encoding.
    """
    return (value % modulus).to_bytes(FIELD_BYTES, "big")


def bytes_to_field(data: bytes, modulus: int = FIELD_MODULUS) -> int:
    """
    Decode up to the first 32 bytes of ``data`` as a big-endian field element.

    Args:
        data: Byte buffer (only the first 32 bytes are read).
        modulus: Field order to reduce by.

    Returns:
        The reduced field element.
    """
    return int.from_bytes(bytes(data[:FIELD_BYTES]), "big") % modulus


def coordinate_to_bytes(value: int) -> bytes:
    """Encode a base-field curve coordinate, rejecting out-of-range values."""
    if not 0 <= value < BASE_FIELD_MODULUS:
        raise ValueError(f"Coordinate outside the BN254 base field: {value}")
    return value.to_bytes(FIELD_BYTES, "big")


def random_field_element() -> int:
    """Draw a uniformly random scalar field element."""
    return secrets.randbelow(FIELD_MODULUS)


def hash_fields(*values: int) -> int:
    """
    Hash field elements into a field element.

    The inputs are concatenated as 32-byte encodings, hashed with
    SHA-256 and the digest reduced into the scalar field.
    """
    digest = hashlib.sha256(b"".join(field_to_bytes(v) for v in values)).digest()
    return bytes_to_field(digest)


def pubkey_to_field(pubkey: bytes) -> int:
    """Map a 32-byte public key into the scalar field."""
    if len(pubkey) != FIELD_BYTES:
        raise ValueError(f"Public key must be 32 bytes, got {len(pubkey)}")
    return bytes_to_field(pubkey)
