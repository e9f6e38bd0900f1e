"""
Makora Privacy - Data Models

Pydantic models for everything the privacy layer hands across its
boundary: stealth meta-addresses and payments, Merkle proofs and tree
snapshots, Groth16 proof bytes, transfer circuit inputs and status.

Aliases follow the camelCase names used by the dashboard and the
on-chain tooling so snapshots can be exchanged as JSON.
"""

from datetime import datetime, timezone
from typing import Literal

import base58
from pydantic import BaseModel, ConfigDict, Field, field_validator

# =============================================================================
# STEALTH ADDRESS MODELS
# =============================================================================


class StealthMetaAddress(BaseModel):
    """
    Long-lived published pair of public keys.

    Encoded as ``st:<base58(spending)>:<base58(viewing)>``.
    """

    spending_pub_key: bytes = Field(
        alias="spendingPubKey", min_length=32, max_length=32, description="Ed25519 spending key (K)"
    )
    viewing_pub_key: bytes = Field(
        alias="viewingPubKey", min_length=32, max_length=32, description="X25519 viewing key (V)"
    )
    encoded: str = Field(description="Shareable string form")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class StealthAddress(BaseModel):
    """
    A one-time stealth address for receiving a single payment.

    ``ephemeral_private_key`` is only set on the sender's side and must
    not be persisted beyond publishing the announcement.
    """

    address: bytes = Field(min_length=32, max_length=32, description="One-time public key")
    ephemeral_pub_key: bytes = Field(
        alias="ephemeralPubKey", min_length=32, max_length=32, description="Ephemeral key (R)"
    )
    view_tag: int = Field(alias="viewTag", ge=0, le=255, description="Scanning pre-filter byte")
    created_at: datetime = Field(
        alias="createdAt", default_factory=lambda: datetime.now(timezone.utc)
    )
    ephemeral_private_key: bytes | None = Field(
        default=None, alias="ephemeralPrivateKey", exclude=True, repr=False
    )

    model_config = ConfigDict(populate_by_name=True)

    @property
    def address_base58(self) -> str:
        """Get the stealth address as a Solana base58 string."""
        return base58.b58encode(self.address).decode("ascii")


class StealthAnnouncement(BaseModel):
    """Decoded form of the 65-byte on-chain announcement."""

    view_tag: int = Field(alias="viewTag", ge=0, le=255)
    ephemeral_pub_key: bytes = Field(alias="ephemeralPubKey", min_length=32, max_length=32)
    stealth_address: bytes = Field(alias="stealthAddress", min_length=32, max_length=32)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class StealthPayment(BaseModel):
    """A detected incoming stealth payment."""

    stealth_address: bytes = Field(alias="stealthAddress")
    ephemeral_pub_key: bytes = Field(alias="ephemeralPubKey")
    amount: int = Field(ge=0, description="Amount in lamports / base units")
    token_mint: bytes | None = Field(default=None, alias="tokenMint", description="None for SOL")
    signature: str = Field(description="Transaction signature")
    block_time: int = Field(default=0, alias="blockTime")
    slot: int = Field(default=0)
    claimed: bool = Field(default=False)
    view_tag: int = Field(alias="viewTag", ge=0, le=255)

    model_config = ConfigDict(populate_by_name=True)


class ScanOptions(BaseModel):
    """Options for scanning stealth payments."""

    from_slot: int | None = Field(default=None, alias="fromSlot", ge=0)
    to_slot: int | None = Field(default=None, alias="toSlot", ge=0)
    token_mints: list[bytes] | None = Field(default=None, alias="tokenMints")
    include_claimed: bool = Field(default=False, alias="includeClaimed")
    limit: int = Field(default=100, gt=0, le=1000)

    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# SHIELDED TRANSFER MODELS
# =============================================================================


class MerkleProof(BaseModel):
    """
    Inclusion proof of a leaf under a given root.

    Only meaningful against ``root``; detecting that the tree moved on
    since generation is the caller's responsibility.
    """

    path: list[int] = Field(description="Sibling hashes, leaf level first")
    path_indices: list[Literal[0, 1]] = Field(
        alias="pathIndices", description="0 = current node is left, 1 = right"
    )
    root: int
    leaf: int
    leaf_index: int = Field(alias="leafIndex", ge=0)

    model_config = ConfigDict(populate_by_name=True)


class TreeState(BaseModel):
    """JSON-serializable Merkle tree snapshot."""

    leaves: list[tuple[int, str]] = Field(description="(index, decimal value) pairs")
    depth: int = Field(gt=0, le=32)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("leaves")
    @classmethod
    def _check_decimal(cls, leaves: list[tuple[int, str]]) -> list[tuple[int, str]]:
        for index, value in leaves:
            if index < 0:
                raise ValueError(f"Negative leaf index: {index}")
            int(value)
        return leaves


class Groth16Proof(BaseModel):
    """Groth16 proof in the byte layout expected by the on-chain verifier."""

    pi_a: bytes = Field(min_length=64, max_length=64, description="G1: x || y")
    pi_b: bytes = Field(min_length=128, max_length=128, description="G2: x0 || x1 || y0 || y1")
    pi_c: bytes = Field(min_length=64, max_length=64, description="G1: x || y")

    model_config = ConfigDict(frozen=True)

    def to_bytes(self) -> bytes:
        """Concatenate the proof into the 256-byte instruction payload."""
        return self.pi_a + self.pi_b + self.pi_c


class ProofResult(BaseModel):
    """Encoded proof plus the public signals the circuit exposed."""

    proof: Groth16Proof
    public_signals: list[str] = Field(alias="publicSignals")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class TransferPublicInputs(BaseModel):
    """Public inputs of the two-in/two-out transfer circuit."""

    merkle_root: int = Field(alias="merkleRoot")
    nullifier_1: int = Field(alias="nullifier1")
    nullifier_2: int = Field(alias="nullifier2")
    output_commitment_1: int = Field(alias="outputCommitment1")
    output_commitment_2: int = Field(alias="outputCommitment2")
    public_amount: int = Field(alias="publicAmount", description="Deposit/withdrawal amount")
    token_mint: int = Field(alias="tokenMint")

    model_config = ConfigDict(populate_by_name=True)


class TransferPrivateInputs(BaseModel):
    """Private witness of the two-in/two-out transfer circuit."""

    in_amount_1: int = Field(alias="inAmount1")
    in_owner_pubkey_1: int = Field(alias="inOwnerPubkey1")
    in_randomness_1: int = Field(alias="inRandomness1")
    in_path_indices_1: list[int] = Field(alias="inPathIndices1")
    in_path_elements_1: list[int] = Field(alias="inPathElements1")

    in_amount_2: int = Field(alias="inAmount2")
    in_owner_pubkey_2: int = Field(alias="inOwnerPubkey2")
    in_randomness_2: int = Field(alias="inRandomness2")
    in_path_indices_2: list[int] = Field(alias="inPathIndices2")
    in_path_elements_2: list[int] = Field(alias="inPathElements2")

    out_amount_1: int = Field(alias="outAmount1")
    out_recipient_1: int = Field(alias="outRecipient1")
    out_randomness_1: int = Field(alias="outRandomness1")
    out_amount_2: int = Field(alias="outAmount2")
    out_recipient_2: int = Field(alias="outRecipient2")
    out_randomness_2: int = Field(alias="outRandomness2")

    spending_key: int = Field(alias="spendingKey", repr=False)

    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# STATUS
# =============================================================================


class PrivacyStatus(BaseModel):
    """Live, read-only view of the privacy manager."""

    enabled: bool
    stealth_available: bool = Field(alias="stealthAvailable")
    shielded_available: bool = Field(alias="shieldedAvailable")
    note_count: int = Field(alias="noteCount")
    current_root: int | None = Field(alias="currentRoot")

    model_config = ConfigDict(populate_by_name=True, frozen=True)
