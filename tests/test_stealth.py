"""Tests for stealth keys, meta-addresses and one-time addresses."""

import hashlib

import base58
import nacl.exceptions
import pytest

from makora_privacy import (
    InvalidAnnouncementError,
    InvalidKeyError,
    InvalidMetaAddressError,
    SpendingKeypair,
    ViewingKeypair,
    create_stealth_announcement,
    derive_stealth_private_key,
    derive_stealth_public_key,
    generate_stealth_address,
    generate_stealth_meta_address,
    parse_stealth_announcement,
    parse_stealth_meta_address,
    verify_stealth_ownership,
)
from makora_privacy.models import StealthMetaAddress
from makora_privacy.stealth import compute_shared_secret, compute_view_tag


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def spending():
    """Create a deterministic spending keypair."""
    return SpendingKeypair.from_seed(bytes(range(32)))


@pytest.fixture
def viewing():
    """Create a deterministic viewing keypair."""
    return ViewingKeypair.from_private_key(bytes(range(32, 64)))


@pytest.fixture
def meta(spending, viewing):
    """Create the recipient's meta-address."""
    return generate_stealth_meta_address(spending, viewing)


# =============================================================================
# KEY TESTS
# =============================================================================


class TestKeypairs:
    """Tests for spending and viewing keypairs."""

    def test_spending_from_solana_secret_key(self, spending):
        """Test loading a 64-byte Solana secret key."""
        secret_key = spending.seed + spending.public_key

        loaded = SpendingKeypair.from_secret_key(secret_key)

        assert loaded.public_key == spending.public_key
        assert loaded.scalar == spending.scalar

    def test_spending_secret_key_mismatch(self, spending):
        """Test that a secret key with a foreign public half is rejected."""
        secret_key = spending.seed + bytes(32)

        with pytest.raises(InvalidKeyError):
            SpendingKeypair.from_secret_key(secret_key)

    def test_wrong_seed_length(self):
        """Test that short seeds are rejected."""
        with pytest.raises(InvalidKeyError) as exc_info:
            SpendingKeypair.from_seed(bytes(16))

        assert exc_info.value.actual == 16

    def test_viewing_public_key(self, viewing):
        """Test the viewing public key is the X25519 base multiple."""
        assert len(viewing.public_key) == 32
        assert viewing.public_key != viewing.private_key


# =============================================================================
# META-ADDRESS TESTS
# =============================================================================


class TestMetaAddress:
    """Tests for meta-address encoding."""

    def test_encoding_format(self, meta, spending, viewing):
        """Test the st:<spending>:<viewing> format."""
        tag, spending_b58, viewing_b58 = meta.encoded.split(":")

        assert tag == "st"
        assert base58.b58decode(spending_b58) == spending.public_key
        assert base58.b58decode(viewing_b58) == viewing.public_key

    def test_parse_round_trip(self, meta):
        """Test parsing an encoded meta-address restores both keys."""
        parsed = parse_stealth_meta_address(meta.encoded)

        assert parsed == meta

    @pytest.mark.parametrize(
        "encoded",
        [
            "",
            "st:abc",
            "xx:abc:def",
            "st:a:b:c",
            "st:0OIl:0OIl",
        ],
    )
    def test_parse_malformed(self, encoded):
        """Test malformed meta-addresses are rejected."""
        with pytest.raises(InvalidMetaAddressError):
            parse_stealth_meta_address(encoded)

    def test_parse_short_keys(self):
        """Test keys that do not decode to 32 bytes are rejected."""
        short = base58.b58encode(bytes(range(1, 17))).decode()

        with pytest.raises(InvalidMetaAddressError) as exc_info:
            parse_stealth_meta_address(f"st:{short}:{short}")

        assert "32 bytes" in exc_info.value.message


# =============================================================================
# STEALTH ADDRESS TESTS
# =============================================================================


class TestStealthAddress:
    """Tests for one-time address derivation."""

    def test_recipient_recovers_spending_key(self, meta, spending, viewing):
        """Test the recipient's derived key controls the sender's address."""
        stealth = generate_stealth_address(meta)

        keypair = derive_stealth_private_key(spending, viewing, stealth.ephemeral_pub_key)

        assert keypair.public_key == stealth.address

    def test_recipient_accepts_raw_secret_key(self, meta, spending, viewing):
        """Test derivation from a 64-byte secret key and raw viewing key."""
        stealth = generate_stealth_address(meta.encoded)

        keypair = derive_stealth_private_key(
            spending.seed + spending.public_key,
            viewing.private_key,
            stealth.ephemeral_pub_key,
        )

        assert keypair.public_key == stealth.address

    def test_stealth_signature_verifies(self, meta, spending, viewing):
        """Test a signature by the stealth key verifies under the address."""
        stealth = generate_stealth_address(meta)
        keypair = derive_stealth_private_key(spending, viewing, stealth.ephemeral_pub_key)

        signature = keypair.sign(b"sweep")

        assert keypair.verify_key.verify(b"sweep", signature) == b"sweep"
        with pytest.raises(nacl.exceptions.BadSignatureError):
            keypair.verify_key.verify(b"other", signature)

    def test_addresses_are_unlinkable(self, meta):
        """Test two payments to one meta-address share no public value."""
        first = generate_stealth_address(meta)
        second = generate_stealth_address(meta)

        assert first.address != second.address
        assert first.ephemeral_pub_key != second.ephemeral_pub_key
        assert first.address != meta.spending_pub_key

    def test_derivation_is_deterministic(self, meta):
        """Test the sender side only depends on the ephemeral key."""
        ephemeral = bytes(range(100, 132))

        assert derive_stealth_public_key(meta, ephemeral) == derive_stealth_public_key(
            meta, ephemeral
        )

    def test_view_tag_matches_shared_secret(self, meta, viewing):
        """Test the view tag is the first byte of the hashed shared secret."""
        stealth = generate_stealth_address(meta)

        shared = compute_shared_secret(viewing.private_key, stealth.ephemeral_pub_key)

        assert stealth.view_tag == compute_view_tag(shared)

    def test_ephemeral_private_key_not_serialized(self, meta):
        """Test the sender-only key never leaves through model_dump."""
        stealth = generate_stealth_address(meta)

        assert stealth.ephemeral_private_key is not None
        assert "ephemeral_private_key" not in stealth.model_dump()

    def test_invalid_spending_point(self, viewing):
        """Test a non-point spending key is rejected on the sender side."""
        identity = b"\x01" + bytes(31)
        bad_meta = StealthMetaAddress(
            spending_pub_key=identity,
            viewing_pub_key=viewing.public_key,
            encoded="st:x:y",
        )

        with pytest.raises(InvalidKeyError):
            derive_stealth_public_key(bad_meta, bytes(range(100, 132)))


# =============================================================================
# OWNERSHIP TESTS
# =============================================================================


class TestOwnership:
    """Tests for verify_stealth_ownership."""

    def test_owner_verifies(self, meta, spending, viewing):
        """Test the intended recipient recognizes the address."""
        stealth = generate_stealth_address(meta)

        assert verify_stealth_ownership(
            stealth.address, stealth.ephemeral_pub_key, viewing, spending.public_key
        )
        assert verify_stealth_ownership(
            stealth.address_base58,
            stealth.ephemeral_pub_key,
            viewing.private_key,
            spending.public_key,
            stealth.view_tag,
        )

    def test_other_wallet_rejects(self, meta, spending):
        """Test a different viewing key does not claim the address."""
        stealth = generate_stealth_address(meta)

        assert not verify_stealth_ownership(
            stealth.address,
            stealth.ephemeral_pub_key,
            ViewingKeypair.generate(),
            spending.public_key,
        )

    def test_wrong_view_tag_rejects(self, meta, spending, viewing):
        """Test a mismatching view tag short-circuits to False."""
        stealth = generate_stealth_address(meta)

        assert not verify_stealth_ownership(
            stealth.address,
            stealth.ephemeral_pub_key,
            viewing,
            spending.public_key,
            (stealth.view_tag + 1) % 256,
        )

    def test_malformed_input_returns_false(self, spending, viewing):
        """Test malformed input never raises."""
        assert not verify_stealth_ownership(bytes(31), bytes(32), viewing, spending.public_key)
        assert not verify_stealth_ownership(bytes(32), bytes(5), viewing, spending.public_key)
        assert not verify_stealth_ownership("not-base58-0OIl", bytes(32), viewing, bytes(32))


class TestViewTagFilter:
    """Tests for the one-byte view tag pre-filter."""

    def test_no_false_negatives(self, meta, viewing):
        """Test every payment to us passes the view tag check."""
        for i in range(64):
            ephemeral = hashlib.sha256(b"own-%d" % i).digest()
            _, ephemeral_pub, view_tag = derive_stealth_public_key(meta, ephemeral)

            shared = compute_shared_secret(viewing.private_key, ephemeral_pub)
            assert compute_view_tag(shared) == view_tag

    def test_false_positive_rate(self, viewing):
        """Test about one in 256 foreign announcements slips through."""
        foreign = generate_stealth_meta_address(
            SpendingKeypair.from_seed(bytes(range(64, 96))),
            ViewingKeypair.from_private_key(bytes(range(96, 128))),
        )
        trials = 4096

        matches = 0
        for i in range(trials):
            ephemeral = hashlib.sha256(b"foreign-%d" % i).digest()
            _, ephemeral_pub, view_tag = derive_stealth_public_key(foreign, ephemeral)
            shared = compute_shared_secret(viewing.private_key, ephemeral_pub)
            matches += compute_view_tag(shared) == view_tag

        # 16 expected
        assert 2 <= matches <= 48


# =============================================================================
# ANNOUNCEMENT TESTS
# =============================================================================


class TestAnnouncement:
    """Tests for the 65-byte announcement layout."""

    def test_layout(self, meta):
        """Test tag || ephemeral || address layout."""
        stealth = generate_stealth_address(meta)

        data = create_stealth_announcement(
            stealth.address, stealth.ephemeral_pub_key, stealth.view_tag
        )

        assert len(data) == 65
        assert data[0] == stealth.view_tag
        assert data[1:33] == stealth.ephemeral_pub_key
        assert data[33:] == stealth.address

    def test_parse(self, meta):
        """Test parsing recovers all three fields."""
        stealth = generate_stealth_address(meta)
        data = create_stealth_announcement(
            stealth.address, stealth.ephemeral_pub_key, stealth.view_tag
        )

        parsed = parse_stealth_announcement(data)

        assert parsed.view_tag == stealth.view_tag
        assert parsed.ephemeral_pub_key == stealth.ephemeral_pub_key
        assert parsed.stealth_address == stealth.address

    @pytest.mark.parametrize("length", [0, 64, 66])
    def test_parse_wrong_length(self, length):
        """Test announcements must be exactly 65 bytes."""
        with pytest.raises(InvalidAnnouncementError) as exc_info:
            parse_stealth_announcement(bytes(length))

        assert exc_info.value.length == length

    def test_view_tag_out_of_range(self):
        """Test view tags must fit in one byte."""
        with pytest.raises(ValueError):
            create_stealth_announcement(bytes(32), bytes(32), 256)
