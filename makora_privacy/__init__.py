"""
Makora Privacy - Stealth Addresses and Shielded Transfers

Privacy layer for the Makora trading agent on Solana: one-time stealth
addresses for receiving payments, plus shielded notes in a commitment
tree spent with Groth16 proofs.

Quick Start:
    from makora_privacy import PrivacyManager, SpendingKeypair, ViewingKeypair

    async with PrivacyManager() as privacy:
        # Recipient publishes a meta-address
        spending, viewing = SpendingKeypair.generate(), ViewingKeypair.generate()
        meta = privacy.generate_meta_address(spending, viewing)

        # Sender derives a one-time address from it
        stealth = privacy.derive_stealth_address(meta.encoded)

        # Recipient scans for payments with the viewing key
        privacy.initialize_scanner(None, viewing, spending)
        payments = await privacy.scan_payments()

        # Shielded notes
        keys = SpendingKeyPair.generate()
        note = privacy.insert_note(privacy.create_shielded_note(1_000_000, keys.owner_pubkey, mint))
        transfer = privacy.prepare_transfer(keys, [note], [(1_000_000, recipient)])
        proof = await privacy.generate_shield_proof(transfer.public_inputs, transfer.private_inputs)

Configuration:
    Set these environment variables or pass to constructor:
    - MAKORA_PRIVACY_ENABLED: Master switch (default: true)
    - MAKORA_MERKLE_DEPTH: Commitment tree depth (default: 20)
    - MAKORA_CIRCUIT_WASM / MAKORA_CIRCUIT_ZKEY: Transfer circuit artifacts
    - MAKORA_RPC_URL: Solana RPC endpoint for scanning
"""

from .exceptions import (
    # Configuration errors
    ConfigurationError,
    InsufficientNoteBalanceError,
    InvalidAnnouncementError,
    InvalidKeyError,
    InvalidMetaAddressError,
    LeafIndexOutOfBoundsError,
    LeafNotFoundError,
    # Base
    MakoraPrivacyError,
    # Network errors
    NetworkError,
    PrivacyDisabledError,
    # Proof errors
    ProofError,
    ProofGenerationError,
    ProverUnavailableError,
    RpcError,
    RpcUnavailableError,
    ScannerNotInitializedError,
    # Shielded errors
    ShieldedError,
    # Stealth errors
    StealthError,
    TreeFullError,
    TreeNotInitializedError,
)
from .field import FIELD_MODULUS, bytes_to_field, field_to_bytes, pubkey_to_field
from .keys import SpendingKeypair, StealthKeypair, ViewingKeypair
from .manager import (
    # Main manager classes
    PreparedTransfer,
    PrivacyConfig,
    PrivacyManager,
    # Convenience functions
    create_privacy_manager,
)
from .merkle import MerkleTree, generate_merkle_proof, verify_merkle_proof
from .models import (
    # Data models
    Groth16Proof,
    MerkleProof,
    PrivacyStatus,
    ProofResult,
    ScanOptions,
    StealthAddress,
    StealthAnnouncement,
    StealthMetaAddress,
    StealthPayment,
    TransferPrivateInputs,
    TransferPublicInputs,
    TreeState,
)
from .note import (
    EncryptedNoteData,
    Note,
    SpendingKeyPair,
    compute_commitment,
    compute_nullifier,
    create_note,
    decrypt_note,
    encrypt_note,
)
from .prover import CircuitInputs, ZkProver, build_circuit_inputs, generate_transfer_proof
from .rpc import SolanaRpcClient
from .scanner import StealthScanner, scan_for_payments
from .stealth import (
    create_stealth_announcement,
    derive_stealth_private_key,
    derive_stealth_public_key,
    generate_stealth_address,
    generate_stealth_meta_address,
    parse_stealth_announcement,
    parse_stealth_meta_address,
    verify_stealth_ownership,
)
from .utils import PrivacyLogger

__version__ = "0.1.0"
__all__ = [
    # Version
    "__version__",
    # Main manager
    "PrivacyManager",
    "PrivacyConfig",
    "PreparedTransfer",
    "create_privacy_manager",
    # Keys
    "SpendingKeypair",
    "ViewingKeypair",
    "StealthKeypair",
    "SpendingKeyPair",
    # Stealth
    "generate_stealth_meta_address",
    "parse_stealth_meta_address",
    "generate_stealth_address",
    "derive_stealth_public_key",
    "derive_stealth_private_key",
    "verify_stealth_ownership",
    "create_stealth_announcement",
    "parse_stealth_announcement",
    "StealthScanner",
    "scan_for_payments",
    "SolanaRpcClient",
    # Shielded
    "Note",
    "EncryptedNoteData",
    "create_note",
    "encrypt_note",
    "decrypt_note",
    "compute_commitment",
    "compute_nullifier",
    "MerkleTree",
    "generate_merkle_proof",
    "verify_merkle_proof",
    "ZkProver",
    "CircuitInputs",
    "build_circuit_inputs",
    "generate_transfer_proof",
    # Field codec
    "FIELD_MODULUS",
    "field_to_bytes",
    "bytes_to_field",
    "pubkey_to_field",
    # Data models
    "StealthMetaAddress",
    "StealthAddress",
    "StealthAnnouncement",
    "StealthPayment",
    "ScanOptions",
    "MerkleProof",
    "TreeState",
    "Groth16Proof",
    "ProofResult",
    "TransferPublicInputs",
    "TransferPrivateInputs",
    "PrivacyStatus",
    # Base exceptions
    "MakoraPrivacyError",
    "ConfigurationError",
    "PrivacyDisabledError",
    # Stealth exceptions
    "StealthError",
    "InvalidMetaAddressError",
    "InvalidAnnouncementError",
    "InvalidKeyError",
    "ScannerNotInitializedError",
    # Shielded exceptions
    "ShieldedError",
    "TreeFullError",
    "LeafNotFoundError",
    "LeafIndexOutOfBoundsError",
    "TreeNotInitializedError",
    "InsufficientNoteBalanceError",
    # Proof exceptions
    "ProofError",
    "ProverUnavailableError",
    "ProofGenerationError",
    # Network exceptions
    "NetworkError",
    "RpcUnavailableError",
    "RpcError",
    # Utilities
    "PrivacyLogger",
]
