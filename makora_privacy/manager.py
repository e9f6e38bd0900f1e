"""
Makora Privacy - Privacy Manager

The facade the trading agent talks to. It ties together:
- Stealth meta-addresses, one-time addresses and payment scanning
- Shielded notes and the commitment tree
- Transfer proof generation

Usage:
    from makora_privacy import PrivacyManager, SpendingKeypair, ViewingKeypair

    async with PrivacyManager() as privacy:
        meta = privacy.generate_meta_address(SpendingKeypair.generate(), ViewingKeypair.generate())
        stealth = privacy.derive_stealth_address(meta.encoded)

        note = privacy.insert_note(privacy.create_shielded_note(1_000_000, owner, mint))
        proof = privacy.generate_merkle_proof(note.leaf_index)
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from typing import Any

import base58

from .exceptions import (
    ConfigurationError,
    InsufficientNoteBalanceError,
    PrivacyDisabledError,
    ScannerNotInitializedError,
    TreeNotInitializedError,
)
from .field import FIELD_MODULUS
from .keys import KEY_BYTES, SpendingKeypair, ViewingKeypair
from .merkle import MERKLE_TREE_DEPTH, MerkleTree
from .models import (
    MerkleProof,
    PrivacyStatus,
    ProofResult,
    ScanOptions,
    StealthAddress,
    StealthMetaAddress,
    StealthPayment,
    TransferPrivateInputs,
    TransferPublicInputs,
    TreeState,
)
from .note import Note, SpendingKeyPair, compute_nullifier, create_note
from .prover import DEFAULT_SNARKJS_BIN, DEFAULT_WASM_PATH, DEFAULT_ZKEY_PATH, ZkProver
from .rpc import SolanaRpcClient
from .scanner import ChainConnection, StealthScanner
from .stealth import (
    generate_stealth_address,
    generate_stealth_meta_address,
    parse_stealth_meta_address,
)
from .utils import PrivacyLogger, validate_amount, validate_rpc_url

logger = logging.getLogger("makora_privacy")

PRIVACY_LEVELS = ("none", "stealth", "shielded")
DEFAULT_ANNOUNCEMENT_PROGRAM = "C1qXFsB6oJgZLQnXwRi9mwrm3QshKMU8kGGUZTAa9xcM"
MAX_TRANSFER_NOTES = 2


def _env_flag(key: str, default: bool) -> bool:
    value = os.environ.get(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


def _env_number(key: str, default: str, cast: type) -> Any:
    value = os.environ.get(key, default)
    try:
        return cast(value)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be a number, got {value!r}", config_key=key) from e


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class PrivacyConfig:
    """
    Configuration for the PrivacyManager.

    Can be set via constructor arguments or environment variables.

    Environment Variables:
        MAKORA_PRIVACY_ENABLED: Master switch for privacy features (true/false)
        MAKORA_PRIVACY_LEVEL: Default level for new transfers (none/stealth/shielded)
        MAKORA_MERKLE_DEPTH: Commitment tree depth (1-32)
        MAKORA_CIRCUIT_WASM: Transfer circuit witness generator
        MAKORA_CIRCUIT_ZKEY: Transfer circuit proving key
        MAKORA_CIRCUIT_VKEY: Transfer circuit verification key
        MAKORA_SNARKJS_BIN: snarkjs executable
        MAKORA_RPC_URL: Solana RPC endpoint used for scanning
        MAKORA_ANNOUNCEMENT_PROGRAM: Program whose logs carry announcements
        MAKORA_RPC_TIMEOUT: RPC request timeout in seconds
    """

    enabled: bool = field(default_factory=lambda: _env_flag("MAKORA_PRIVACY_ENABLED", True))

    privacy_level: str = field(
        default_factory=lambda: os.environ.get("MAKORA_PRIVACY_LEVEL", "stealth").lower()
    )

    merkle_depth: int = field(
        default_factory=lambda: _env_number(
            "MAKORA_MERKLE_DEPTH", str(MERKLE_TREE_DEPTH), int
        )
    )

    # Circuit artifacts
    wasm_path: str = field(
        default_factory=lambda: os.environ.get("MAKORA_CIRCUIT_WASM", DEFAULT_WASM_PATH)
    )
    zkey_path: str = field(
        default_factory=lambda: os.environ.get("MAKORA_CIRCUIT_ZKEY", DEFAULT_ZKEY_PATH)
    )
    vkey_path: str = field(
        default_factory=lambda: os.environ.get(
            "MAKORA_CIRCUIT_VKEY", "./circuits/verification_key.json"
        )
    )
    snarkjs_bin: str = field(
        default_factory=lambda: os.environ.get("MAKORA_SNARKJS_BIN", DEFAULT_SNARKJS_BIN)
    )

    # Network settings
    rpc_url: str = field(
        default_factory=lambda: os.environ.get("MAKORA_RPC_URL", "https://api.devnet.solana.com")
    )
    announcement_program: str = field(
        default_factory=lambda: os.environ.get(
            "MAKORA_ANNOUNCEMENT_PROGRAM", DEFAULT_ANNOUNCEMENT_PROGRAM
        )
    )
    rpc_timeout: float = field(
        default_factory=lambda: _env_number("MAKORA_RPC_TIMEOUT", "30.0", float)
    )

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.privacy_level not in PRIVACY_LEVELS:
            raise ConfigurationError(
                f"Privacy level must be one of {', '.join(PRIVACY_LEVELS)}: {self.privacy_level!r}",
                config_key="privacy_level",
            )

        if not 1 <= self.merkle_depth <= 32:
            raise ConfigurationError(
                f"Merkle depth must be between 1 and 32, got {self.merkle_depth}",
                config_key="merkle_depth",
            )

        if self.rpc_timeout <= 0:
            raise ConfigurationError("RPC timeout must be positive", config_key="rpc_timeout")

        try:
            self.rpc_url = validate_rpc_url(self.rpc_url)
        except ValueError as e:
            raise ConfigurationError(str(e), config_key="rpc_url") from e

        try:
            program = base58.b58decode(self.announcement_program)
        except ValueError as e:
            raise ConfigurationError(
                f"Announcement program is not base58: {e}", config_key="announcement_program"
            ) from e
        if len(program) != KEY_BYTES:
            raise ConfigurationError(
                "Announcement program must decode to 32 bytes",
                config_key="announcement_program",
            )


@dataclass(frozen=True)
class PreparedTransfer:
    """Circuit inputs for a transfer plus the output notes it creates."""

    public_inputs: TransferPublicInputs
    private_inputs: TransferPrivateInputs
    output_notes: tuple[Note, Note]


# =============================================================================
# PRIVACY MANAGER
# =============================================================================


class PrivacyManager:
    """
    Entry point for stealth and shielded privacy features.

    The commitment tree is built at construction when privacy is enabled;
    the scanner and the prover are created on first use. Every operation
    except ``is_enabled`` and ``get_status`` raises PrivacyDisabledError
    while privacy is disabled.

    Usage:
        # Async context manager (closes the scanner's RPC client)
        async with PrivacyManager(merkle_depth=16) as privacy:
            privacy.initialize_scanner(None, viewing, spending.public_key)
            payments = await privacy.scan_payments()

    Configuration:
        Pass a PrivacyConfig, keyword overrides, or set MAKORA_* environment
        variables. Keyword overrides win over both.
    """

    def __init__(self, config: PrivacyConfig | None = None, **overrides: Any) -> None:
        """
        Initialize the manager.

        Args:
            config: Base configuration (defaults come from the environment).
            **overrides: PrivacyConfig fields to override, e.g. ``enabled=False``.

        Raises:
            ConfigurationError: On unknown or invalid configuration values.
        """
        config = config or PrivacyConfig()
        if overrides:
            unknown = set(overrides) - {f.name for f in dataclasses.fields(PrivacyConfig)}
            if unknown:
                key = sorted(unknown)[0]
                raise ConfigurationError(f"Unknown configuration option: {key}", config_key=key)
            config = dataclasses.replace(config, **overrides)

        self._config = config
        self._tree: MerkleTree | None = MerkleTree(config.merkle_depth) if config.enabled else None
        self._scanner: StealthScanner | None = None
        self._prover: ZkProver | None = None
        self._owned_rpc: SolanaRpcClient | None = None
        self._events = PrivacyLogger()

    @property
    def config(self) -> PrivacyConfig:
        return self._config

    async def __aenter__(self) -> PrivacyManager:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the RPC client the manager created for scanning, if any."""
        if self._owned_rpc:
            await self._owned_rpc.close()
            self._owned_rpc = None

    # =========================================================================
    # STEALTH ADDRESSES
    # =========================================================================

    def generate_meta_address(
        self,
        spending_keypair: SpendingKeypair,
        viewing_keypair: ViewingKeypair,
    ) -> StealthMetaAddress:
        """Build the meta-address to publish for receiving stealth payments."""
        self._ensure_enabled()
        return generate_stealth_meta_address(spending_keypair, viewing_keypair)

    def parse_meta_address(self, encoded: str) -> StealthMetaAddress:
        """Parse an ``st:<spending>:<viewing>`` meta-address."""
        self._ensure_enabled()
        return parse_stealth_meta_address(encoded)

    def derive_stealth_address(self, recipient_meta: StealthMetaAddress | str) -> StealthAddress:
        """
        Derive a fresh one-time address for paying ``recipient_meta``.

        The result carries the ephemeral private key; drop it once the
        announcement is published.
        """
        self._ensure_enabled()
        stealth = generate_stealth_address(recipient_meta)
        self._events.log_stealth_address_derived(stealth.address, stealth.view_tag)
        return stealth

    def initialize_scanner(
        self,
        connection: ChainConnection | None,
        viewing_private_key: ViewingKeypair | bytes,
        spending_pub_key: SpendingKeypair | bytes,
    ) -> None:
        """
        Set up payment scanning.

        Args:
            connection: Chain connection. When None, the manager opens a
                SolanaRpcClient on the configured RPC URL and owns it.
            viewing_private_key: Viewing keypair or 32-byte private key.
            spending_pub_key: Spending keypair or 32-byte public key.
        """
        self._ensure_enabled()

        if isinstance(viewing_private_key, ViewingKeypair):
            viewing_private_key = viewing_private_key.private_key
        if isinstance(spending_pub_key, SpendingKeypair):
            spending_pub_key = spending_pub_key.public_key

        if connection is None:
            if self._owned_rpc is None:
                self._owned_rpc = SolanaRpcClient(
                    self._config.rpc_url, timeout=self._config.rpc_timeout
                )
            connection = self._owned_rpc

        self._scanner = StealthScanner(
            connection,
            viewing_private_key,
            spending_pub_key,
            announcement_program=self._config.announcement_program,
        )

    async def scan_payments(self, options: ScanOptions | None = None) -> list[StealthPayment]:
        """
        Scan for incoming stealth payments.

        Raises:
            ScannerNotInitializedError: If ``initialize_scanner`` was not called.
        """
        self._ensure_enabled()
        if self._scanner is None:
            raise ScannerNotInitializedError()

        if self._owned_rpc is not None:
            await self._owned_rpc.connect()

        return await self._scanner.scan(options)

    # =========================================================================
    # SHIELDED NOTES
    # =========================================================================

    def create_shielded_note(self, amount: int, recipient: int, token_mint: int) -> Note:
        """Create a note for ``recipient`` (owner public key as a field element)."""
        self._ensure_enabled()
        return create_note(amount, recipient, token_mint)

    def insert_note_commitment(self, commitment: int) -> int:
        """Append a commitment to the tree and return its leaf index."""
        tree = self._ensure_tree()
        index = tree.insert(commitment)
        self._events.log_note_inserted(commitment, index, tree.root)
        return index

    def insert_note(self, note: Note) -> Note:
        """Insert a note's commitment and return the note with its leaf index set."""
        index = self.insert_note_commitment(note.commitment)
        return note.model_copy(update={"leaf_index": index})

    def generate_merkle_proof(self, leaf_index: int) -> MerkleProof:
        """Inclusion proof for a leaf against the current root."""
        return self._ensure_tree().generate_proof(leaf_index)

    def get_merkle_root(self) -> int:
        """Get the current commitment tree root."""
        return self._ensure_tree().get_root()

    def prepare_transfer(
        self,
        spending_keys: SpendingKeyPair,
        input_notes: list[Note],
        outputs: list[tuple[int, int]],
        *,
        public_amount: int = 0,
        token_mint: int | None = None,
    ) -> PreparedTransfer:
        """
        Assemble circuit inputs for a two-in/two-out transfer.

        Missing inputs and outputs are padded with zero-amount notes owned
        by ``spending_keys``. When the inputs exceed the outputs and an
        output slot is free, the difference is returned as change.

        Args:
            spending_keys: Keys owning every input note.
            input_notes: Up to two notes already in the tree.
            outputs: Up to two ``(amount, recipient_owner_pubkey)`` pairs.
            public_amount: Value entering (positive) or leaving (negative)
                the pool.
            token_mint: Token mint as a field element; taken from the
                input notes when omitted.

        Raises:
            InsufficientNoteBalanceError: If inputs plus the public amount
                cannot cover the outputs.
            ValueError: On too many notes, mixed mints, foreign or
                unindexed input notes, or an unbalanced transfer with
                no room for change.
        """
        tree = self._ensure_tree()

        if len(input_notes) > MAX_TRANSFER_NOTES or len(outputs) > MAX_TRANSFER_NOTES:
            raise ValueError(f"A transfer takes at most {MAX_TRANSFER_NOTES} inputs and outputs")

        mints = {note.token_mint for note in input_notes}
        if token_mint is not None:
            mints.add(token_mint % FIELD_MODULUS)
        if len(mints) != 1:
            raise ValueError("Transfer needs exactly one token mint")
        mint = mints.pop()

        for note in input_notes:
            if note.owner_pubkey != spending_keys.owner_pubkey:
                raise ValueError("Input note is not owned by the spending key")
            if note.leaf_index is None or tree.get_leaf(note.leaf_index) != note.commitment:
                raise ValueError("Input note commitment is not in the tree")

        for amount, _ in outputs:
            validate_amount(amount)

        available = sum(note.amount for note in input_notes) + public_amount
        required = sum(amount for amount, _ in outputs)
        if available < required:
            raise InsufficientNoteBalanceError(required=required, available=available)

        outputs = list(outputs)
        if available > required:
            if len(outputs) == MAX_TRANSFER_NOTES:
                raise ValueError(f"Transfer does not balance: {available} in, {required} out")
            outputs.append((available - required, spending_keys.owner_pubkey))

        owner = spending_keys.owner_pubkey
        inputs = list(input_notes)
        while len(inputs) < MAX_TRANSFER_NOTES:
            inputs.append(create_note(0, owner, mint))
        while len(outputs) < MAX_TRANSFER_NOTES:
            outputs.append((0, owner))

        output_notes = tuple(create_note(amount, recipient, mint) for amount, recipient in outputs)

        nullifiers = []
        paths = []
        for note in inputs:
            if note.leaf_index is None:
                # Zero-amount padding note, not in the tree
                leaf_index = 0
                path = ([0] * tree.depth, list(tree.zero_values[: tree.depth]))
            else:
                leaf_index = note.leaf_index
                proof = tree.generate_proof(leaf_index)
                path = (list(proof.path_indices), proof.path)
            nullifiers.append(
                compute_nullifier(note.commitment, leaf_index, spending_keys.spending_key)
            )
            paths.append(path)

        public_inputs = TransferPublicInputs(
            merkle_root=tree.root,
            nullifier_1=nullifiers[0],
            nullifier_2=nullifiers[1],
            output_commitment_1=output_notes[0].commitment,
            output_commitment_2=output_notes[1].commitment,
            public_amount=public_amount % FIELD_MODULUS,
            token_mint=mint,
        )

        private_inputs = TransferPrivateInputs(
            in_amount_1=inputs[0].amount,
            in_owner_pubkey_1=inputs[0].owner_pubkey,
            in_randomness_1=inputs[0].randomness,
            in_path_indices_1=paths[0][0],
            in_path_elements_1=paths[0][1],
            in_amount_2=inputs[1].amount,
            in_owner_pubkey_2=inputs[1].owner_pubkey,
            in_randomness_2=inputs[1].randomness,
            in_path_indices_2=paths[1][0],
            in_path_elements_2=paths[1][1],
            out_amount_1=output_notes[0].amount,
            out_recipient_1=output_notes[0].owner_pubkey,
            out_randomness_1=output_notes[0].randomness,
            out_amount_2=output_notes[1].amount,
            out_recipient_2=output_notes[1].owner_pubkey,
            out_randomness_2=output_notes[1].randomness,
            spending_key=spending_keys.spending_key,
        )

        return PreparedTransfer(
            public_inputs=public_inputs,
            private_inputs=private_inputs,
            output_notes=output_notes,
        )

    async def generate_shield_proof(
        self,
        public_inputs: TransferPublicInputs,
        private_inputs: TransferPrivateInputs,
    ) -> ProofResult:
        """
        Generate a Groth16 transfer proof.

        Raises:
            ProverUnavailableError: If snarkjs is not installed.
            ProofGenerationError: If proving fails.
        """
        self._ensure_enabled()

        if self._prover is None:
            self._prover = ZkProver(
                self._config.wasm_path,
                self._config.zkey_path,
                snarkjs_bin=self._config.snarkjs_bin,
            )
        await self._prover.initialize()

        return await self._prover.generate_transfer_proof(public_inputs, private_inputs)

    # =========================================================================
    # STATUS & PERSISTENCE
    # =========================================================================

    def is_enabled(self) -> bool:
        return self._config.enabled

    def get_status(self) -> PrivacyStatus:
        """Snapshot of the live manager state."""
        enabled = self._config.enabled
        return PrivacyStatus(
            enabled=enabled,
            stealth_available=enabled,
            shielded_available=enabled and self._prover is not None and self._prover.is_ready,
            note_count=self._tree.leaf_count if self._tree else 0,
            current_root=self._tree.root if self._tree else None,
        )

    def export_tree_state(self) -> TreeState:
        """Snapshot the commitment tree for persistence."""
        return self._ensure_tree().export()

    def import_tree_state(self, state: TreeState | dict[str, Any]) -> None:
        """Replace the commitment tree with a snapshot from ``export_tree_state``."""
        self._ensure_enabled()
        if self._tree is None:
            self._tree = MerkleTree(self._config.merkle_depth)
        self._tree.import_state(state)
        self._events.log_tree_imported(self._tree.leaf_count, self._tree.depth, self._tree.root)

    # =========================================================================
    # INTERNAL METHODS
    # =========================================================================

    def _ensure_enabled(self) -> None:
        """Ensure privacy is enabled, raise if not."""
        if not self._config.enabled:
            raise PrivacyDisabledError()

    def _ensure_tree(self) -> MerkleTree:
        self._ensure_enabled()
        if self._tree is None:
            raise TreeNotInitializedError()
        return self._tree


def create_privacy_manager(config: PrivacyConfig | None = None, **overrides: Any) -> PrivacyManager:
    """
    Create a privacy manager.

    Args:
        config: Privacy configuration.
        **overrides: PrivacyConfig fields to override.
    """
    return PrivacyManager(config, **overrides)
