"""
Makora Privacy - ZK Proof Pipeline

Builds inputs for the two-in/two-out Groth16 transfer circuit, runs an
external proving backend over them and re-encodes the proof into the
fixed-size byte layout the on-chain verifier expects.

The backend is a capability object chosen once per binary: either
``SnarkjsBackend`` (the ``snarkjs`` CLI is on PATH) or
``UnavailableBackend``, which fails every call with install
instructions. A proof is never fabricated.

Usage:
    prover = ZkProver("./circuits/transfer.wasm", "./circuits/transfer.zkey")
    result = await prover.generate_transfer_proof(public_inputs, private_inputs)
    payload = result.proof.to_bytes()
"""

from __future__ import annotations

import asyncio
import enum
import functools
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Protocol, TypedDict

from .exceptions import ProofError, ProofGenerationError, ProverUnavailableError
from .field import coordinate_to_bytes
from .models import Groth16Proof, ProofResult, TransferPrivateInputs, TransferPublicInputs
from .utils import PrivacyLogger

logger = logging.getLogger("makora_privacy")

DEFAULT_WASM_PATH = "./circuits/transfer.wasm"
DEFAULT_ZKEY_PATH = "./circuits/transfer.zkey"
DEFAULT_SNARKJS_BIN = "snarkjs"
SNARKJS_REMEDIATION = "Install snarkjs: npm install -g snarkjs"

G1_BYTES = 64
G2_BYTES = 128


class CircuitInputs(TypedDict):
    """Witness input of the transfer circuit, keyed by signal name."""

    merkle_root: str
    nullifier_1: str
    nullifier_2: str
    output_commitment_1: str
    output_commitment_2: str
    public_amount: str
    token_mint: str

    in_amount_1: str
    in_owner_pubkey_1: str
    in_randomness_1: str
    in_path_indices_1: list[str]
    in_path_elements_1: list[str]

    in_amount_2: str
    in_owner_pubkey_2: str
    in_randomness_2: str
    in_path_indices_2: list[str]
    in_path_elements_2: list[str]

    out_amount_1: str
    out_recipient_1: str
    out_randomness_1: str
    out_amount_2: str
    out_recipient_2: str
    out_randomness_2: str

    spending_key: str


CIRCUIT_SIGNAL_NAMES: tuple[str, ...] = tuple(CircuitInputs.__annotations__)

_PUBLIC_SIGNALS = (
    "merkle_root",
    "nullifier_1",
    "nullifier_2",
    "output_commitment_1",
    "output_commitment_2",
    "public_amount",
    "token_mint",
)


def build_circuit_inputs(
    public_inputs: TransferPublicInputs,
    private_inputs: TransferPrivateInputs,
) -> CircuitInputs:
    """
    Map structured transfer data onto circuit signal names.

    Every value is rendered as a decimal string, path vectors element-wise.
    """
    inputs: dict[str, Any] = {name: str(getattr(public_inputs, name)) for name in _PUBLIC_SIGNALS}
    for name in CIRCUIT_SIGNAL_NAMES:
        if name in inputs:
            continue
        value = getattr(private_inputs, name)
        inputs[name] = [str(v) for v in value] if isinstance(value, list) else str(value)
    return CircuitInputs(**inputs)


# =============================================================================
# PROOF ENCODING
# =============================================================================


def g1_to_bytes(point: list[Any]) -> bytes:
    """Encode a G1 point ``[x, y, z]`` as ``x || y`` (64 bytes)."""
    return coordinate_to_bytes(int(point[0])) + coordinate_to_bytes(int(point[1]))


def g2_to_bytes(point: list[list[Any]]) -> bytes:
    """Encode a G2 point ``[[x0, x1], [y0, y1], z]`` as ``x0 || x1 || y0 || y1`` (128 bytes)."""
    (x0, x1), (y0, y1) = point[0][:2], point[1][:2]
    return b"".join(coordinate_to_bytes(int(c)) for c in (x0, x1, y0, y1))


def proof_to_bytes(proof: dict[str, Any]) -> Groth16Proof:
    """
    Convert a snarkjs proof object into on-chain byte layout.

    Raises:
        ProofGenerationError: If a coordinate is missing or out of range.
    """
    try:
        return Groth16Proof(
            pi_a=g1_to_bytes(proof["pi_a"]),
            pi_b=g2_to_bytes(proof["pi_b"]),
            pi_c=g1_to_bytes(proof["pi_c"]),
        )
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise ProofGenerationError(f"Malformed proof from backend: {e}", phase="encode") from e


# =============================================================================
# BACKENDS
# =============================================================================


class ProvingBackend(Protocol):
    """A Groth16 prover/verifier."""

    name: str

    @property
    def available(self) -> bool: ...

    async def full_prove(
        self, inputs: CircuitInputs, wasm_path: str, zkey_path: str
    ) -> tuple[dict[str, Any], list[str]]: ...

    async def verify(
        self, vkey: dict[str, Any], public_signals: list[str], proof: dict[str, Any]
    ) -> bool: ...


class SnarkjsBackend:
    """Runs the ``snarkjs`` CLI in a subprocess, exchanging JSON through temp files."""

    name = "snarkjs"

    def __init__(self, binary: str = DEFAULT_SNARKJS_BIN, timeout: float = 300.0) -> None:
        self.binary = binary
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return True

    async def full_prove(
        self, inputs: CircuitInputs, wasm_path: str, zkey_path: str
    ) -> tuple[dict[str, Any], list[str]]:
        with tempfile.TemporaryDirectory(prefix="makora-prove-") as workdir:
            input_file = os.path.join(workdir, "input.json")
            proof_file = os.path.join(workdir, "proof.json")
            public_file = os.path.join(workdir, "public.json")
            _write_json(input_file, inputs)

            returncode, _, stderr = await self._run(
                "groth16", "fullprove", input_file, wasm_path, zkey_path, proof_file, public_file
            )
            if returncode != 0:
                raise ProofGenerationError(
                    f"snarkjs fullprove exited with {returncode}: {stderr.strip()[:200]}",
                    phase="prove",
                )

            try:
                return _read_json(proof_file), [str(s) for s in _read_json(public_file)]
            except (OSError, ValueError) as e:
                raise ProofGenerationError(
                    f"snarkjs produced unreadable output: {e}", phase="prove"
                ) from e

    async def verify(
        self, vkey: dict[str, Any], public_signals: list[str], proof: dict[str, Any]
    ) -> bool:
        with tempfile.TemporaryDirectory(prefix="makora-verify-") as workdir:
            vkey_file = os.path.join(workdir, "verification_key.json")
            public_file = os.path.join(workdir, "public.json")
            proof_file = os.path.join(workdir, "proof.json")
            _write_json(vkey_file, vkey)
            _write_json(public_file, public_signals)
            _write_json(proof_file, proof)

            returncode, stdout, _ = await self._run(
                "groth16", "verify", vkey_file, public_file, proof_file
            )
            return returncode == 0 and "OK" in stdout

    async def _run(self, *args: str) -> tuple[int, str, str]:
        proc = await asyncio.create_subprocess_exec(
            self.binary,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise ProofGenerationError(
                f"snarkjs {args[1]} timed out after {self.timeout}s", phase="prove"
            ) from e
        return proc.returncode or 0, stdout.decode(errors="replace"), stderr.decode(errors="replace")


class UnavailableBackend:
    """Stands in when no prover is installed. Every call fails loudly."""

    name = "snarkjs"

    def __init__(self, reason: str = SNARKJS_REMEDIATION) -> None:
        self.reason = reason

    @property
    def available(self) -> bool:
        return False

    def _unavailable(self) -> ProverUnavailableError:
        return ProverUnavailableError(self.name, self.reason)

    async def full_prove(
        self, inputs: CircuitInputs, wasm_path: str, zkey_path: str
    ) -> tuple[dict[str, Any], list[str]]:
        raise self._unavailable()

    async def verify(
        self, vkey: dict[str, Any], public_signals: list[str], proof: dict[str, Any]
    ) -> bool:
        raise self._unavailable()


@functools.lru_cache(maxsize=None)
def detect_backend(binary: str = DEFAULT_SNARKJS_BIN) -> ProvingBackend:
    """Pick the proving backend for ``binary``. Resolved once per binary."""
    if shutil.which(binary):
        logger.debug(f"Using snarkjs backend at {binary}")
        return SnarkjsBackend(binary)
    logger.warning(f"snarkjs binary '{binary}' not found on PATH")
    return UnavailableBackend(f"'{binary}' not found on PATH. {SNARKJS_REMEDIATION}")


# =============================================================================
# PROVER
# =============================================================================


class ProverState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class ZkProver:
    """
    Groth16 prover for the transfer circuit.

    Initialization (backend check plus circuit artifacts) happens at most
    once; concurrent first calls wait on the same lock. A failed
    initialization leaves the prover uninitialized so the next call retries.
    """

    def __init__(
        self,
        wasm_path: str | None = None,
        zkey_path: str | None = None,
        backend: ProvingBackend | None = None,
        *,
        snarkjs_bin: str = DEFAULT_SNARKJS_BIN,
    ) -> None:
        self.wasm_path = wasm_path or DEFAULT_WASM_PATH
        self.zkey_path = zkey_path or DEFAULT_ZKEY_PATH
        self.state = ProverState.UNINITIALIZED
        self._backend = backend
        self._snarkjs_bin = snarkjs_bin
        self._lock = asyncio.Lock()
        self._events = PrivacyLogger()

    @property
    def is_ready(self) -> bool:
        return self.state is ProverState.READY

    @property
    def backend(self) -> ProvingBackend:
        if self._backend is None:
            self._backend = detect_backend(self._snarkjs_bin)
        return self._backend

    async def initialize(self) -> None:
        """
        Check the backend and circuit artifacts.

        Raises:
            ProverUnavailableError: If no proving backend is installed.
            ProofGenerationError: If a circuit artifact is missing.
        """
        if self.state is ProverState.READY:
            return

        async with self._lock:
            if self.state is ProverState.READY:
                return

            self.state = ProverState.INITIALIZING
            try:
                backend = self.backend
                if not backend.available:
                    raise ProverUnavailableError(
                        backend.name, getattr(backend, "reason", SNARKJS_REMEDIATION)
                    )
                for artifact in (self.wasm_path, self.zkey_path):
                    if not Path(artifact).is_file():
                        raise ProofGenerationError(
                            f"Circuit artifact not found: {artifact}", phase="initialize"
                        )
            except BaseException:
                self.state = ProverState.UNINITIALIZED
                raise

            self.state = ProverState.READY
            logger.info(f"ZK prover ready ({backend.name})")

    async def generate_transfer_proof(
        self,
        public_inputs: TransferPublicInputs,
        private_inputs: TransferPrivateInputs,
    ) -> ProofResult:
        """Build circuit inputs and prove them."""
        self._events.log_proof_requested(public_inputs.merkle_root, public_inputs.public_amount)
        return await self.generate_proof(build_circuit_inputs(public_inputs, private_inputs))

    async def generate_proof(self, inputs: CircuitInputs) -> ProofResult:
        """
        Prove already-built circuit inputs.

        Raises:
            ProverUnavailableError: If no proving backend is installed.
            ProofGenerationError: If the backend fails or returns a
                malformed proof.
        """
        try:
            await self.initialize()
            proof, public_signals = await self.backend.full_prove(
                inputs, self.wasm_path, self.zkey_path
            )
            result = ProofResult(proof=proof_to_bytes(proof), public_signals=public_signals)
        except ProofGenerationError as e:
            self._events.log_proof_failure(e.message, e.phase)
            raise
        except ProofError as e:
            self._events.log_proof_failure(e.message)
            raise

        self._events.log_proof_generated(len(result.public_signals))
        return result

    async def verify_proof(
        self,
        proof: dict[str, Any],
        public_signals: list[str],
        vkey_path: str,
    ) -> bool:
        """
        Verify a snarkjs proof locally against a verification key file.

        Returns False on any failure, including a missing backend.
        """
        try:
            vkey = _read_json(vkey_path)
            return await self.backend.verify(vkey, public_signals, proof)
        except Exception as e:
            logger.debug(f"Proof verification failed: {e}")
            return False


async def generate_transfer_proof(
    public_inputs: TransferPublicInputs,
    private_inputs: TransferPrivateInputs,
    wasm_path: str | None = None,
    zkey_path: str | None = None,
) -> ProofResult:
    """Generate a transfer proof with a throwaway prover."""
    prover = ZkProver(wasm_path, zkey_path)
    return await prover.generate_transfer_proof(public_inputs, private_inputs)


def _write_json(path: str, data: Any) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f)


def _read_json(path: str) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)
