"""Predict PCR values by replaying extend operations on a bank of registers."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Iterator, Sequence

from .pcr import (
    PCR_BANK_REGISTER_MAX,
    HashAlgorithm,
    PcrBank,
    PcrError,
    PcrSelection,
    parse_pcr_index,
)

log = logging.getLogger(__name__)

GRUB_PCR_SNAPSHOT_PATH = (
    "/sys/firmware/efi/efivars/GrubPcrSnapshot-7ce323f2-b841-4d30-a0e9-5474a76c9a3f"
)
DEFAULT_SOURCE = "zero"


class PredictorError(Exception):
    """Raised when a prediction cannot be set up or carried out."""


class OutputFormat(enum.Enum):
    """How predicted PCR values are reported."""

    PLAIN = "plain"
    TPM2_TOOLS = "tpm2-tools"
    BINARY = "binary"

    @classmethod
    def parse(cls, name: str | None) -> "OutputFormat":
        """Look up a format by name (case-insensitive); None means plain."""
        if name is None:
            return cls.PLAIN
        try:
            return cls(name.lower())
        except ValueError:
            raise PredictorError(f'Unsupported output format "{name}"') from None


class StopEventType(enum.Enum):
    """Kinds of event at which event log processing can stop."""

    NONE = "none"
    GRUB_COMMAND = "grub-command"
    GRUB_FILE = "grub-file"


@dataclass(frozen=True)
class StopEvent:
    """An event at which to stop processing, and whether to stop after it."""

    type: StopEventType
    value: str | None
    after: bool


def parse_stop_event(spec: str, after: bool) -> StopEvent:
    """Parse a stop event specification of the form TYPE[=ARG]."""
    name, sep, value = spec.partition("=")
    if sep and not name:
        raise PredictorError(f'Cannot parse stop event "{spec}"')
    if name == StopEventType.GRUB_COMMAND.value:
        event_type = StopEventType.GRUB_COMMAND
    elif name == StopEventType.GRUB_FILE.value:
        event_type = StopEventType.GRUB_FILE
    else:
        raise PredictorError(f'Unsupported event type "{name}" in stop event "{spec}"')
    return StopEvent(event_type, value if sep else None, after)


def load_initial_bank(
    pcr_mask: int,
    algo: HashAlgorithm,
    source: str,
    snapshot_path: str = GRUB_PCR_SNAPSHOT_PATH,
) -> PcrBank:
    """Create a bank for the selected PCRs, initialised from ``source``."""
    bank = PcrBank(pcr_mask, algo)
    if source in ("zero", "eventlog"):
        bank.init_from_zero()
    elif source == "snapshot":
        try:
            bank.init_from_snapshot(snapshot_path)
        except PcrError as exc:
            raise PredictorError(str(exc)) from exc
    elif source == "current":
        raise PredictorError("Reading current PCR values from the TPM is not supported")
    else:
        raise PredictorError(
            "don't know how to load PCR bank with initial values: "
            f'unsupported source "{source}"'
        )
    return bank


def format_plain(algo_name: str, pcr_index: int, value: bytes) -> str:
    """Format a register as "ALGO:INDEX hexvalue"."""
    return f"{algo_name}:{pcr_index} {bytes(value).hex()}"


def format_tpm2_tools(pcr_index: int, value: bytes) -> str:
    """Format a register the way tpm2_pcrread displays it."""
    return f"  {pcr_index:<2d}: 0x{bytes(value).hex().upper()}"


class Predictor:
    """Holds a predicted PCR bank and applies updates to it."""

    def __init__(
        self,
        selection: PcrSelection,
        source: str | None = None,
        output_format: str | None = None,
        snapshot_path: str = GRUB_PCR_SNAPSHOT_PATH,
    ) -> None:
        source = source or DEFAULT_SOURCE
        self.selection = selection
        self.pcr_mask = selection.pcr_mask
        self.algo = selection.algo
        self.initial_source = source
        self.output_format = OutputFormat.parse(output_format)
        self.snapshot_path = snapshot_path

        if source == "eventlog":
            raise PredictorError("Event log based prediction is not supported")

        log.debug("Initializing predictor for %s:%#x from %s", self.algo.name, self.pcr_mask, source)
        self.prediction = load_initial_bank(self.pcr_mask, self.algo, source, snapshot_path)

    def default_pcr_index(self) -> int | None:
        """Return the PCR index if the selection holds exactly one PCR."""
        mask = self.pcr_mask
        if mask == 0 or mask & (mask - 1):
            return None
        return mask.bit_length() - 1

    def _extend(self, pcr_index: int, digest: bytes) -> None:
        log.debug("Extend PCR#%d: %s", pcr_index, digest.hex())
        try:
            self.prediction.extend(pcr_index, digest)
        except PcrError as exc:
            log.error("%s", exc)

    def update_string(self, pcr_index: int, value: str) -> None:
        """Extend a PCR with the digest of a string."""
        log.debug('Extending PCR %u with string "%s"', pcr_index, value)
        self._extend(pcr_index, self.algo.digest(value.encode()))

    def update_file(self, pcr_index: int, filename: str) -> None:
        """Extend a PCR with the digest of a file's content."""
        try:
            with open(filename, "rb") as fp:
                data = fp.read()
        except OSError as exc:
            raise PredictorError(f"Unable to read {filename}: {exc}") from exc
        self._extend(pcr_index, self.algo.digest(data))

    def update_all(self, args: Sequence[str]) -> None:
        """Apply a sequence of "[INDEX] TYPE ARG" updates."""
        pcr_index = self.default_pcr_index()
        words: Iterator[str] = iter(args)

        def next_word() -> str:
            try:
                return next(words)
            except StopIteration:
                raise PredictorError("Missing argument") from None

        for word in words:
            kind = word
            if kind[:1].isdigit():
                try:
                    pcr_index = parse_pcr_index(kind)
                except PcrError:
                    raise PredictorError(f'unable to parse PCR index "{kind}"') from None
                kind = next_word()

            if kind == "eventlog":
                continue

            arg = next_word()
            if pcr_index is None:
                raise PredictorError(f"Unable to infer which PCR to update for {kind} {arg}")

            if kind == "string":
                self.update_string(pcr_index, arg)
            elif kind == "file":
                self.update_file(pcr_index, arg)
            else:
                raise PredictorError(f'Unsupported keyword "{kind}" while trying to update predictor')

    def verify(self, source: str) -> tuple[int, list[str]]:
        """Compare the prediction with ``source``; return mismatch count and report lines."""
        actual = load_initial_bank(self.pcr_mask, self.algo, source, self.snapshot_path)
        algo_name = self.algo.name
        mismatches = 0
        lines: list[str] = []

        for index in range(PCR_BANK_REGISTER_MAX):
            predicted = self.prediction.get_register(index)
            if predicted is None:
                continue
            current = actual.get_register(index) if actual.is_valid(index) else None

            if current is None:
                # Registers never extended are skipped quietly (e.g. with "all").
                if not any(predicted):
                    continue
                log.debug("PCR %u not present in %s", index, source)
                lines.append(f"{algo_name}:{index} {predicted.hex()} MISSING")
                mismatches += 1
            elif predicted == current:
                lines.append(f"{algo_name}:{index} {predicted.hex()} OK")
            else:
                lines.append(f"{algo_name}:{index} {predicted.hex()} MISMATCH; actual={current.hex()}")
                mismatches += 1

        if mismatches:
            log.error("Found %u mismatches", mismatches)
        return mismatches, lines

    def report(self) -> bytes:
        """Render every valid register in the configured output format."""
        chunks: list[bytes] = []
        for index in self.prediction.valid_indices():
            value = self.prediction.get_register(index)
            if value is None:
                continue
            if self.output_format is OutputFormat.BINARY:
                chunks.append(value)
            elif self.output_format is OutputFormat.TPM2_TOOLS:
                chunks.append((format_tpm2_tools(index, value) + "\n").encode())
            else:
                chunks.append((format_plain(self.algo.name, index, value) + "\n").encode())
        return b"".join(chunks)