"""
Makora Privacy - Key Material

Spending keys are Solana Ed25519 keypairs, viewing keys are X25519
keypairs. A recovered stealth key is a bare Ed25519 scalar (it has no
seed), so ``StealthKeypair`` signs with the scalar directly and
produces signatures any Ed25519 verifier accepts.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field

import nacl.bindings
import nacl.public
import nacl.signing

from .exceptions import InvalidKeyError

KEY_BYTES = 32
SOLANA_SECRET_KEY_BYTES = 64

_NONCE_DOMAIN = b"makora-stealth-nonce-v1"


def _check_length(name: str, value: bytes, expected: int = KEY_BYTES) -> bytes:
    if len(value) != expected:
        raise InvalidKeyError(name, expected=expected, actual=len(value))
    return bytes(value)


def reduce_scalar(data: bytes) -> bytes:
    """Reduce a little-endian integer of up to 64 bytes modulo the Ed25519 group order."""
    return nacl.bindings.crypto_core_ed25519_scalar_reduce(data.ljust(64, b"\x00"))


def spending_scalar_from_secret(secret: bytes) -> bytes:
    """
    Derive the Ed25519 secret scalar from a Solana secret key.

    Args:
        secret: 32-byte seed or 64-byte Solana secret key (seed || pubkey).

    Returns:
        The scalar ``a`` (reduced mod the group order) with ``A = a*G``.
    """
    if len(secret) == SOLANA_SECRET_KEY_BYTES:
        secret = secret[:KEY_BYTES]
    _check_length("spending private key", secret)
    digest = bytearray(hashlib.sha512(secret).digest()[:32])
    digest[0] &= 248
    digest[31] &= 127
    digest[31] |= 64
    return reduce_scalar(bytes(digest))


@dataclass(frozen=True)
class SpendingKeypair:
    """Ed25519 keypair whose public half is published in the meta-address."""

    signing_key: nacl.signing.SigningKey = field(repr=False)

    @classmethod
    def generate(cls) -> SpendingKeypair:
        return cls(nacl.signing.SigningKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> SpendingKeypair:
        return cls(nacl.signing.SigningKey(_check_length("spending seed", seed)))

    @classmethod
    def from_secret_key(cls, secret_key: bytes) -> SpendingKeypair:
        """Load a 64-byte Solana secret key (seed || pubkey)."""
        _check_length("Solana secret key", secret_key, SOLANA_SECRET_KEY_BYTES)
        keypair = cls.from_seed(secret_key[:KEY_BYTES])
        if keypair.public_key != bytes(secret_key[KEY_BYTES:]):
            raise InvalidKeyError(
                "Solana secret key", message="Secret key public half does not match its seed"
            )
        return keypair

    @property
    def seed(self) -> bytes:
        return bytes(self.signing_key)

    @property
    def public_key(self) -> bytes:
        return bytes(self.signing_key.verify_key)

    @property
    def scalar(self) -> bytes:
        return spending_scalar_from_secret(self.seed)


@dataclass(frozen=True)
class ViewingKeypair:
    """X25519 keypair used to detect incoming payments."""

    private: nacl.public.PrivateKey = field(repr=False)

    @classmethod
    def generate(cls) -> ViewingKeypair:
        return cls(nacl.public.PrivateKey.generate())

    @classmethod
    def from_private_key(cls, private_key: bytes) -> ViewingKeypair:
        return cls(nacl.public.PrivateKey(_check_length("viewing private key", private_key)))

    @property
    def private_key(self) -> bytes:
        return bytes(self.private)

    @property
    def public_key(self) -> bytes:
        return bytes(self.private.public_key)


@dataclass(frozen=True)
class StealthKeypair:
    """
    Spending authority over a single stealth address.

    ``scalar`` is the blinded private scalar ``k + H(s) mod l`` and
    ``public_key`` equals ``scalar * G``.
    """

    scalar: bytes = field(repr=False)
    public_key: bytes

    @classmethod
    def from_scalar(cls, scalar: bytes) -> StealthKeypair:
        scalar = _check_length("stealth scalar", scalar)
        public_key = nacl.bindings.crypto_scalarmult_ed25519_base_noclamp(scalar)
        return cls(scalar=scalar, public_key=public_key)

    @property
    def verify_key(self) -> nacl.signing.VerifyKey:
        return nacl.signing.VerifyKey(self.public_key)

    def sign(self, message: bytes) -> bytes:
        """
        Produce a 64-byte Ed25519 signature (R || S) over ``message``.

        The nonce is derived deterministically from the scalar and the
        message, as in RFC 8032.
        """
        prefix = hashlib.sha512(_NONCE_DOMAIN + self.scalar).digest()[32:]
        r = reduce_scalar(hashlib.sha512(prefix + message).digest())
        big_r = nacl.bindings.crypto_scalarmult_ed25519_base_noclamp(r)
        k = reduce_scalar(hashlib.sha512(big_r + self.public_key + message).digest())
        s = nacl.bindings.crypto_core_ed25519_scalar_add(
            r, nacl.bindings.crypto_core_ed25519_scalar_mul(k, self.scalar)
        )
        return big_r + s
