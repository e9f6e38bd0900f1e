"""Tests for shielded notes."""

import os

import pytest

from makora_privacy import (
    EncryptedNoteData,
    Note,
    SpendingKeyPair,
    compute_commitment,
    compute_nullifier,
    create_note,
    decrypt_note,
    encrypt_note,
)
from makora_privacy.field import FIELD_MODULUS, bytes_to_field, hash_fields


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def note():
    """Create a note with fixed randomness."""
    return create_note(1_000_000, owner_pubkey=1234, token_mint=5678, randomness=42)


@pytest.fixture
def shared_secret():
    """Create a random 32-byte shared secret."""
    return os.urandom(32)


# =============================================================================
# NOTE TESTS
# =============================================================================


class TestCreateNote:
    """Tests for note creation."""

    def test_commitment(self, note):
        """Test the commitment hashes amount, owner, randomness and mint."""
        assert note.commitment == compute_commitment(1_000_000, 1234, 42, 5678)
        assert note.verify_commitment()
        assert note.leaf_index is None

    def test_fresh_randomness(self):
        """Test two notes for the same value do not share a commitment."""
        first = create_note(5, 1, 2)
        second = create_note(5, 1, 2)

        assert first.randomness != second.randomness
        assert first.commitment != second.commitment

    def test_zero_amount_allowed(self):
        """Test zero-amount padding notes can be created."""
        assert create_note(0, 1, 2).amount == 0

    @pytest.mark.parametrize("amount", [-1, 2**64, 1.5, True])
    def test_invalid_amount(self, amount):
        """Test amounts must be u64 integers."""
        with pytest.raises(ValueError):
            create_note(amount, 1, 2)

    def test_owner_reduced_into_field(self):
        """Test owner and mint are stored as field elements."""
        created = create_note(1, FIELD_MODULUS + 1, FIELD_MODULUS + 2, randomness=3)

        assert created.owner_pubkey == 1
        assert created.token_mint == 2

    def test_tampered_note_fails_commitment(self, note):
        """Test changing a field breaks the commitment check."""
        tampered = note.model_copy(update={"amount": note.amount + 1})

        assert not tampered.verify_commitment()

    def test_json_round_trip(self, note):
        """Test the decimal-string JSON form."""
        data = note.model_copy(update={"leaf_index": 3}).to_json_dict()

        assert data["amount"] == "1000000"
        assert data["leafIndex"] == 3
        assert Note.from_json_dict(data).commitment == note.commitment


class TestSpendingKeys:
    """Tests for field-level spending keys and nullifiers."""

    def test_key_derivation(self):
        """Test owner_pubkey = H(k) and spending_key_hash = H(owner_pubkey)."""
        keys = SpendingKeyPair.from_spending_key(99)

        assert keys.owner_pubkey == hash_fields(99)
        assert keys.spending_key_hash == hash_fields(keys.owner_pubkey)

    def test_spending_key_not_in_repr(self):
        """Test the secret stays out of repr."""
        keys = SpendingKeyPair.from_spending_key(123456789)

        assert "123456789" not in repr(keys)

    def test_nullifier_binds_position_and_key(self, note):
        """Test the nullifier changes with the leaf index and the key."""
        base = compute_nullifier(note.commitment, 0, 7)

        assert base == hash_fields(note.commitment, 0, 7)
        assert compute_nullifier(note.commitment, 1, 7) != base
        assert compute_nullifier(note.commitment, 0, 8) != base


# =============================================================================
# ENCRYPTION TESTS
# =============================================================================


class TestNoteEncryption:
    """Tests for encrypt_note / decrypt_note."""

    def test_round_trip(self, note, shared_secret):
        """Test the holder of the shared secret recovers the note."""
        encrypted = encrypt_note(note, shared_secret)

        decrypted = decrypt_note(encrypted, shared_secret)

        assert decrypted is not None
        assert decrypted.amount == note.amount
        assert decrypted.owner_pubkey == note.owner_pubkey
        assert decrypted.randomness == note.randomness
        assert decrypted.token_mint == note.token_mint
        assert decrypted.commitment == note.commitment

    def test_commitment_is_public(self, note, shared_secret):
        """Test the commitment travels unencrypted."""
        encrypted = encrypt_note(note, shared_secret)

        assert bytes_to_field(encrypted.commitment) == note.commitment
        assert len(encrypted.nonce) == 24
        assert len(encrypted.ephemeral_pubkey) == 32

    def test_fresh_nonce_per_encryption(self, note, shared_secret):
        """Test encrypting twice never reuses a nonce or ciphertext."""
        first = encrypt_note(note, shared_secret)
        second = encrypt_note(note, shared_secret)

        assert first.nonce != second.nonce
        assert first.ciphertext != second.ciphertext

    def test_wrong_secret_returns_none(self, note, shared_secret):
        """Test authentication failure yields None."""
        encrypted = encrypt_note(note, shared_secret)

        assert decrypt_note(encrypted, os.urandom(32)) is None

    def test_tampered_ciphertext_returns_none(self, note, shared_secret):
        """Test a flipped ciphertext bit is detected."""
        encrypted = encrypt_note(note, shared_secret)
        flipped = bytes([encrypted.ciphertext[0] ^ 1]) + encrypted.ciphertext[1:]

        tampered = encrypted.model_copy(update={"ciphertext": flipped})

        assert decrypt_note(tampered, shared_secret) is None

    def test_commitment_mismatch_returns_none(self, note, shared_secret):
        """Test a swapped public commitment is rejected."""
        encrypted = encrypt_note(note, shared_secret)
        other = create_note(1, 2, 3)

        swapped = EncryptedNoteData(
            ciphertext=encrypted.ciphertext,
            ephemeral_pubkey=encrypted.ephemeral_pubkey,
            commitment=other.commitment_bytes(),
            nonce=encrypted.nonce,
        )

        assert decrypt_note(swapped, shared_secret) is None
