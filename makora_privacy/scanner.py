"""
Makora Privacy - Stealth Payment Scanner

Finds incoming stealth payments with the viewing key:

1. Pull announcements from the privacy program's logs in a slot range
2. Drop the ~255/256 that fail the one-byte view tag check
3. Fully verify ownership of the rest
4. Mark payments as claimed when the stealth address is drained

Announcements are emitted by the program as log lines:

    Program log: Makora:StealthTransfer <base64 announcement> <amount> <mint|SOL>
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import base58
import nacl.exceptions

from .exceptions import InvalidAnnouncementError, InvalidKeyError, NetworkError, StealthError
from .keys import KEY_BYTES
from .models import ScanOptions, StealthAnnouncement, StealthPayment
from .stealth import (
    blind_public_key,
    compute_shared_secret,
    compute_view_tag,
    parse_stealth_announcement,
    verify_stealth_ownership,
)
from .utils import PrivacyLogger

logger = logging.getLogger("makora_privacy")

ANNOUNCEMENT_LOG_MARKER = "Makora:StealthTransfer"
SOL_MINT_TAG = "SOL"

# Rent-exempt minimum for a zero-data account; anything below is drained.
CLAIMED_BALANCE_THRESHOLD = 890_880


class ChainConnection(Protocol):
    """The subset of ``SolanaRpcClient`` the scanner depends on."""

    async def get_signatures_for_address(
        self,
        address: bytes | str,
        *,
        limit: int = 100,
        before: str | None = None,
        until: str | None = None,
    ) -> list[dict[str, Any]]: ...

    async def get_transaction(self, signature: str) -> dict[str, Any] | None: ...

    async def get_balance(self, address: bytes | str) -> int: ...


@dataclass(frozen=True)
class AnnouncementRecord:
    """An announcement together with the transaction that carried it."""

    announcement: StealthAnnouncement
    amount: int
    token_mint: bytes | None
    signature: str
    slot: int
    block_time: int


def format_announcement_log(
    announcement: bytes,
    amount: int,
    token_mint: bytes | None = None,
) -> str:
    """Render the log line the privacy program emits for an announcement."""
    parse_stealth_announcement(announcement)
    mint = SOL_MINT_TAG if token_mint is None else base58.b58encode(token_mint).decode("ascii")
    encoded = base64.b64encode(announcement).decode("ascii")
    return f"Program log: {ANNOUNCEMENT_LOG_MARKER} {encoded} {amount} {mint}"


def parse_announcement_log(log: str) -> tuple[StealthAnnouncement, int, bytes | None] | None:
    """
    Parse an announcement log line.

    Returns:
        ``(announcement, amount, token_mint)`` or None if the line is not a
        well-formed announcement.
    """
    if ANNOUNCEMENT_LOG_MARKER not in log:
        return None

    fields = log.split(ANNOUNCEMENT_LOG_MARKER, 1)[1].split()
    if len(fields) != 3:
        return None

    raw, amount_text, mint_text = fields
    try:
        announcement = parse_stealth_announcement(base64.b64decode(raw, validate=True))
        amount = int(amount_text)
        token_mint = None if mint_text == SOL_MINT_TAG else base58.b58decode(mint_text)
    except (binascii.Error, InvalidAnnouncementError, ValueError):
        return None

    if amount < 0 or (token_mint is not None and len(token_mint) != KEY_BYTES):
        return None

    return announcement, amount, token_mint


class StealthScanner:
    """
    Scanner for incoming stealth payments.

    Holds only the viewing private key and the spending public key, so
    it can detect payments but never spend them. Scans are idempotent:
    overlapping ranges may report a payment twice but never skip one.
    """

    def __init__(
        self,
        connection: ChainConnection,
        viewing_private_key: bytes,
        spending_pub_key: bytes,
        *,
        announcement_program: bytes | str,
    ) -> None:
        """
        Initialize the scanner.

        Args:
            connection: Chain connection (normally a SolanaRpcClient).
            viewing_private_key: 32-byte X25519 viewing key.
            spending_pub_key: 32-byte Ed25519 spending public key.
            announcement_program: Program whose logs carry announcements.
        """
        if len(viewing_private_key) != KEY_BYTES:
            raise InvalidKeyError("viewing private key", KEY_BYTES, len(viewing_private_key))
        if len(spending_pub_key) != KEY_BYTES:
            raise InvalidKeyError("spending public key", KEY_BYTES, len(spending_pub_key))

        self.connection = connection
        self.announcement_program = announcement_program
        self.last_scanned_slot = 0
        self._viewing_private_key = bytes(viewing_private_key)
        self._spending_pub_key = bytes(spending_pub_key)
        self._events = PrivacyLogger()

    async def scan(self, options: ScanOptions | None = None) -> list[StealthPayment]:
        """
        Scan for incoming stealth payments.

        Args:
            options: Slot range, mint filter, claimed filter and limit.
                ``from_slot`` defaults to the last scanned slot.

        Returns:
            Detected payments, oldest first.
        """
        options = options or ScanOptions()
        from_slot = options.from_slot if options.from_slot is not None else self.last_scanned_slot

        records = await self.fetch_announcements(from_slot, options.to_slot, options.limit)

        payments: list[StealthPayment] = []
        for record in records:
            payment = await self._process_announcement(record, options.token_mints)
            if payment and (options.include_claimed or not payment.claimed):
                payments.append(payment)

        if records:
            self.last_scanned_slot = max(self.last_scanned_slot, max(r.slot for r in records))

        self._events.log_scan_complete(len(records), len(payments), self.last_scanned_slot)
        return payments

    async def check_transaction(self, signature: str) -> StealthPayment | None:
        """
        Check whether one transaction pays this wallet.

        Args:
            signature: Transaction signature to inspect.

        Returns:
            The payment, or None if the transaction carries none for us.
        """
        try:
            tx = await self.connection.get_transaction(signature)
        except NetworkError as e:
            logger.debug(f"Transaction lookup failed for {signature}: {e}")
            return None
        if not tx:
            return None

        for record in _records_from_transaction(tx, signature):
            payment = await self._process_announcement(record, None)
            if payment:
                return payment

        return None

    def check_view_tag(self, view_tag: int, ephemeral_pub_key: bytes) -> bool:
        """Cheap pre-filter: does the announcement's view tag match ours?"""
        try:
            shared_secret = compute_shared_secret(self._viewing_private_key, ephemeral_pub_key)
        except (StealthError, ValueError, RuntimeError):
            return False
        return compute_view_tag(shared_secret) == view_tag

    def verify_ownership(self, ephemeral_pub_key: bytes, stealth_address: bytes | str) -> bool:
        """Full ownership check of a stealth address."""
        return verify_stealth_ownership(
            stealth_address,
            ephemeral_pub_key,
            self._viewing_private_key,
            self._spending_pub_key,
        )

    async def fetch_announcements(
        self,
        from_slot: int,
        to_slot: int | None,
        limit: int,
    ) -> list[AnnouncementRecord]:
        """
        Fetch announcements in ``[from_slot, to_slot]`` from the chain.

        Signatures are paged newest-first until the range is covered, then
        processed oldest-first so that ``limit`` never skips a slot the
        cursor has already moved past.
        """
        signatures: list[dict[str, Any]] = []
        before: str | None = None

        while True:
            page = await self.connection.get_signatures_for_address(
                self.announcement_program, limit=limit, before=before
            )
            if not page:
                break

            for entry in page:
                slot = int(entry.get("slot", 0))
                if entry.get("err") is not None or slot < from_slot:
                    continue
                if to_slot is not None and slot > to_slot:
                    continue
                signatures.append(entry)

            oldest_slot = int(page[-1].get("slot", 0))
            if len(page) < limit or oldest_slot < from_slot:
                break
            before = page[-1]["signature"]

        signatures.sort(key=lambda entry: int(entry.get("slot", 0)))

        records: list[AnnouncementRecord] = []
        for entry in signatures:
            if len(records) >= limit:
                break
            try:
                tx = await self.connection.get_transaction(entry["signature"])
            except NetworkError as e:
                logger.debug(f"Skipping transaction {entry['signature']}: {e}")
                continue
            if tx:
                records.extend(
                    _records_from_transaction(tx, entry["signature"], int(entry.get("slot", 0)))
                )

        return records[:limit]

    async def check_if_claimed(self, stealth_address: bytes) -> bool:
        """
        Infer whether a stealth payment was already claimed.

        A balance below the rent-exempt minimum means the funds were
        swept. RPC failures count as unclaimed.
        """
        try:
            balance = await self.connection.get_balance(stealth_address)
            return int(balance) < CLAIMED_BALANCE_THRESHOLD
        except Exception as e:
            logger.debug(f"Balance lookup failed, treating as unclaimed: {e}")
            return False

    # =========================================================================
    # INTERNAL METHODS
    # =========================================================================

    def _owns(self, announcement: StealthAnnouncement) -> bool:
        """View tag check then full ownership check, sharing one key agreement."""
        try:
            shared_secret = compute_shared_secret(
                self._viewing_private_key, announcement.ephemeral_pub_key
            )
            if compute_view_tag(shared_secret) != announcement.view_tag:
                return False
            expected = blind_public_key(self._spending_pub_key, shared_secret)
        except (StealthError, nacl.exceptions.CryptoError, ValueError, TypeError):
            return False
        return expected == announcement.stealth_address

    async def _process_announcement(
        self,
        record: AnnouncementRecord,
        token_mints: list[bytes] | None,
    ) -> StealthPayment | None:
        announcement = record.announcement

        if not self._owns(announcement):
            return None

        if token_mints and record.token_mint is not None:
            if not any(bytes(mint) == record.token_mint for mint in token_mints):
                return None

        claimed = await self.check_if_claimed(announcement.stealth_address)

        self._events.log_payment_detected(
            announcement.stealth_address, record.amount, record.signature
        )

        return StealthPayment(
            stealth_address=announcement.stealth_address,
            ephemeral_pub_key=announcement.ephemeral_pub_key,
            amount=record.amount,
            token_mint=record.token_mint,
            signature=record.signature,
            block_time=record.block_time,
            slot=record.slot,
            claimed=claimed,
            view_tag=announcement.view_tag,
        )


def _records_from_transaction(
    tx: dict[str, Any],
    signature: str,
    slot: int = 0,
) -> list[AnnouncementRecord]:
    meta = tx.get("meta") or {}
    slot = int(tx.get("slot") or slot)
    records = []
    for log in meta.get("logMessages") or []:
        parsed = parse_announcement_log(log)
        if parsed is None:
            continue
        announcement, amount, token_mint = parsed
        records.append(
            AnnouncementRecord(
                announcement=announcement,
                amount=amount,
                token_mint=token_mint,
                signature=signature,
                slot=slot,
                block_time=int(tx.get("blockTime") or 0),
            )
        )
    return records


async def scan_for_payments(
    connection: ChainConnection,
    viewing_private_key: bytes,
    spending_pub_key: bytes,
    options: ScanOptions | None = None,
    *,
    announcement_program: bytes | str,
) -> list[StealthPayment]:
    """
    Scan for stealth payments with a throwaway scanner.

    Args:
        connection: Chain connection.
        viewing_private_key: Viewing key for detection.
        spending_pub_key: Spending public key for verification.
        options: Scan options.
        announcement_program: Program whose logs carry announcements.
    """
    scanner = StealthScanner(
        connection,
        viewing_private_key,
        spending_pub_key,
        announcement_program=announcement_program,
    )
    return await scanner.scan(options)
