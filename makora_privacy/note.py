"""
Makora Privacy - Shielded Notes

A note is a shielded UTXO identified publicly only by its commitment
``H(amount || owner_pubkey || randomness || token_mint)``. Notes are
never mutated once created; spending one is expressed by a nullifier
that the transfer circuit re-derives.

Encrypted notes use XSalsa20-Poly1305 (``nacl.secret.SecretBox``), so a
wrong shared secret fails authentication instead of yielding garbage.
"""

from __future__ import annotations

import hashlib
from typing import Any

import nacl.exceptions
import nacl.secret
import nacl.utils
from pydantic import BaseModel, ConfigDict, Field

from .field import (
    FIELD_BYTES,
    FIELD_MODULUS,
    bytes_to_field,
    field_to_bytes,
    hash_fields,
    random_field_element,
)
from .utils import validate_amount

NOTE_PLAINTEXT_BYTES = 4 * FIELD_BYTES
EPHEMERAL_BYTES = 32


class Note(BaseModel):
    """A shielded note (UTXO)."""

    amount: int = Field(ge=0, description="Amount in base units")
    owner_pubkey: int = Field(alias="ownerPubkey", description="Owner key as field element")
    randomness: int = Field(description="Blinding randomness")
    token_mint: int = Field(alias="tokenMint", description="Token mint as field element")
    commitment: int
    leaf_index: int | None = Field(default=None, alias="leafIndex", ge=0)

    model_config = ConfigDict(populate_by_name=True)

    def commitment_bytes(self) -> bytes:
        """Get the commitment as 32 big-endian bytes."""
        return field_to_bytes(self.commitment)

    def verify_commitment(self) -> bool:
        """Recompute the commitment from the note fields and compare."""
        return self.commitment == compute_commitment(
            self.amount, self.owner_pubkey, self.randomness, self.token_mint
        )

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with decimal strings, safe for JSON storage."""
        data: dict[str, Any] = {
            "amount": str(self.amount),
            "ownerPubkey": str(self.owner_pubkey),
            "randomness": str(self.randomness),
            "tokenMint": str(self.token_mint),
            "commitment": str(self.commitment),
        }
        if self.leaf_index is not None:
            data["leafIndex"] = self.leaf_index
        return data

    @classmethod
    def from_json_dict(cls, data: dict[str, Any]) -> Note:
        """Inverse of ``to_json_dict``."""
        return cls(
            amount=int(data["amount"]),
            owner_pubkey=int(data["ownerPubkey"]),
            randomness=int(data["randomness"]),
            token_mint=int(data["tokenMint"]),
            commitment=int(data["commitment"]),
            leaf_index=data.get("leafIndex"),
        )


class EncryptedNoteData(BaseModel):
    """Storage / wire form of a note."""

    ciphertext: bytes
    ephemeral_pubkey: bytes = Field(
        alias="ephemeralPubkey", min_length=EPHEMERAL_BYTES, max_length=EPHEMERAL_BYTES
    )
    commitment: bytes = Field(
        min_length=FIELD_BYTES, max_length=FIELD_BYTES, description="Public, unencrypted"
    )
    nonce: bytes = Field(
        min_length=nacl.secret.SecretBox.NONCE_SIZE, max_length=nacl.secret.SecretBox.NONCE_SIZE
    )

    model_config = ConfigDict(populate_by_name=True)


class SpendingKeyPair(BaseModel):
    """
    Field-level spending key for shielded notes.

    ``owner_pubkey = H(spending_key)`` is what notes commit to;
    ``spending_key_hash = H(owner_pubkey)``.
    """

    spending_key: int = Field(alias="spendingKey", repr=False)
    owner_pubkey: int = Field(alias="ownerPubkey")
    spending_key_hash: int = Field(alias="spendingKeyHash")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @classmethod
    def from_spending_key(cls, spending_key: int) -> SpendingKeyPair:
        owner_pubkey = hash_fields(spending_key)
        return cls(
            spending_key=spending_key,
            owner_pubkey=owner_pubkey,
            spending_key_hash=hash_fields(owner_pubkey),
        )

    @classmethod
    def generate(cls) -> SpendingKeyPair:
        return cls.from_spending_key(random_field_element())


# =============================================================================
# NOTE OPERATIONS
# =============================================================================


def compute_commitment(amount: int, owner_pubkey: int, randomness: int, token_mint: int) -> int:
    """Commitment ``H(amount || owner_pubkey || randomness || token_mint)``."""
    return hash_fields(amount, owner_pubkey, randomness, token_mint)


def compute_nullifier(commitment: int, leaf_index: int, spending_key: int) -> int:
    """Nullifier ``H(commitment || leaf_index || spending_key)`` of a spent note."""
    return hash_fields(commitment, leaf_index, spending_key)


def create_note(
    amount: int,
    owner_pubkey: int,
    token_mint: int,
    randomness: int | None = None,
) -> Note:
    """
    Create a new note.

    Args:
        amount: Amount in base units (u64).
        owner_pubkey: Owner's public key as a field element.
        token_mint: Token mint as a field element.
        randomness: Commitment randomness; drawn fresh when omitted.

    Returns:
        The note with its commitment computed.
    """
    validate_amount(amount)
    rand = random_field_element() if randomness is None else randomness % FIELD_MODULUS
    owner_pubkey %= FIELD_MODULUS
    token_mint %= FIELD_MODULUS

    return Note(
        amount=amount,
        owner_pubkey=owner_pubkey,
        randomness=rand,
        token_mint=token_mint,
        commitment=compute_commitment(amount, owner_pubkey, rand, token_mint),
    )


def encrypt_note(note: Note, shared_secret: bytes) -> EncryptedNoteData:
    """
    Encrypt a note for off-chain storage.

    A fresh ephemeral value and nonce are drawn on every call. The
    commitment stays in the clear.
    """
    ephemeral = nacl.utils.random(EPHEMERAL_BYTES)
    nonce = nacl.utils.random(nacl.secret.SecretBox.NONCE_SIZE)

    box = nacl.secret.SecretBox(_derive_key(shared_secret, ephemeral))
    encrypted = box.encrypt(_serialize_note(note), nonce)

    return EncryptedNoteData(
        ciphertext=encrypted.ciphertext,
        ephemeral_pubkey=ephemeral,
        commitment=note.commitment_bytes(),
        nonce=nonce,
    )


def decrypt_note(encrypted: EncryptedNoteData, shared_secret: bytes) -> Note | None:
    """
    Decrypt a note.

    Returns:
        The note, or None if authentication fails, the payload is
        malformed, or the decrypted fields do not reproduce the public
        commitment.
    """
    try:
        box = nacl.secret.SecretBox(_derive_key(shared_secret, encrypted.ephemeral_pubkey))
        plaintext = box.decrypt(encrypted.ciphertext, encrypted.nonce)
    except (nacl.exceptions.CryptoError, ValueError, TypeError):
        return None

    if len(plaintext) != NOTE_PLAINTEXT_BYTES:
        return None

    note = _deserialize_note(plaintext)
    if note.commitment != bytes_to_field(encrypted.commitment):
        return None
    return note


# =============================================================================
# HELPERS
# =============================================================================


def _derive_key(shared_secret: bytes, ephemeral: bytes) -> bytes:
    return hashlib.sha256(bytes(shared_secret) + bytes(ephemeral)).digest()


def _serialize_note(note: Note) -> bytes:
    return b"".join(
        field_to_bytes(value)
        for value in (note.amount, note.owner_pubkey, note.randomness, note.token_mint)
    )


def _deserialize_note(data: bytes) -> Note:
    amount, owner_pubkey, randomness, token_mint = (
        bytes_to_field(data[offset : offset + FIELD_BYTES])
        for offset in range(0, NOTE_PLAINTEXT_BYTES, FIELD_BYTES)
    )
    return Note(
        amount=amount,
        owner_pubkey=owner_pubkey,
        randomness=randomness,
        token_mint=token_mint,
        commitment=compute_commitment(amount, owner_pubkey, randomness, token_mint),
    )
