"""PCR selections, hash algorithms and banks of predicted PCR registers."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

log = logging.getLogger(__name__)

PCR_BANK_REGISTER_MAX = 24
ALL_PCRS_MASK = 0xFFFFFFFF
DEFAULT_ALGORITHM = "sha256"

# Flags describing the arguments an operation needs on a target platform.
PLATFORM_NEED_INPUT_FILE = 0x0001
PLATFORM_NEED_OUTPUT_FILE = 0x0002
PLATFORM_NEED_PCR_SELECTION = 0x0004
PLATFORM_NEED_PUBLIC_KEY = 0x0008
PLATFORM_NEED_SIGNED_POLICY = 0x0010
PLATFORM_OPTIONAL_PCR_POLICY = 0x0020


class PcrError(Exception):
    """Raised for invalid PCR specifications or bank operations."""


@dataclass(frozen=True)
class HashAlgorithm:
    """A hash algorithm usable for a PCR bank."""

    name: str
    digest_size: int
    tcg_id: int

    def digest(self, data: bytes) -> bytes:
        """Return the digest of ``data``."""
        return hashlib.new(self.name, bytes(data)).digest()


_ALGORITHMS = {
    algo.name: algo
    for algo in (
        HashAlgorithm("sha1", 20, 0x0004),
        HashAlgorithm("sha256", 32, 0x000B),
        HashAlgorithm("sha384", 48, 0x000C),
        HashAlgorithm("sha512", 64, 0x000D),
    )
}


def algorithm_by_name(name: str) -> HashAlgorithm:
    """Look up a supported hash algorithm by name (case-insensitive)."""
    try:
        return _ALGORITHMS[name.lower()]
    except (KeyError, AttributeError):
        raise PcrError(f'Hash algorithm "{name}" not supported') from None


def parse_pcr_index(text: str) -> int:
    """Parse a single decimal PCR index in the range 0..23."""
    if not text or not (text.isascii() and text.isdigit()):
        raise PcrError(f'Invalid PCR index "{text}"')
    value = int(text, 10)
    if value >= PCR_BANK_REGISTER_MAX:
        raise PcrError(f"PCR index {value} out of range")
    return value


def parse_pcr_mask(text: str) -> int:
    """Parse a comma separated list of PCR indices and ranges into a bit mask."""
    if not text:
        raise PcrError("Empty PCR mask")
    mask = 0
    for part in text.split(","):
        if "-" in part:
            low_text, high_text = part.split("-", 1)
            low = parse_pcr_index(low_text)
            high = parse_pcr_index(high_text)
            if low > high:
                raise PcrError(f'Invalid PCR range "{part}"')
            for index in range(low, high + 1):
                mask |= 1 << index
        else:
            mask |= 1 << parse_pcr_index(part)
    return mask


def selection_valid_string(pcr_spec: str | None) -> bool:
    """Tell whether ``pcr_spec`` is "all" or a parseable PCR mask."""
    if pcr_spec is None:
        return False
    if pcr_spec == "all":
        return True
    try:
        parse_pcr_mask(pcr_spec)
    except PcrError:
        return False
    return True


@dataclass(frozen=True)
class PcrSelection:
    """A set of PCR registers together with the bank's hash algorithm."""

    pcr_mask: int
    algo: HashAlgorithm

    @classmethod
    def parse(cls, algo_name: str | None, pcr_spec: str) -> "PcrSelection":
        """Build a selection from an algorithm name and a PCR specification."""
        if pcr_spec == "all":
            mask = ALL_PCRS_MASK
        else:
            try:
                mask = parse_pcr_mask(pcr_spec)
            except PcrError:
                raise PcrError(f'Unable to parse PCR mask "{pcr_spec}"') from None
        return cls(mask, algorithm_by_name(algo_name or DEFAULT_ALGORITHM))


class PcrBank:
    """A bank of PCR registers for one hash algorithm."""

    def __init__(self, pcr_mask: int, algo: HashAlgorithm) -> None:
        self.pcr_mask = pcr_mask
        self.valid_mask = 0
        self.algo = algo
        self._registers = [bytes(algo.digest_size) for _ in range(PCR_BANK_REGISTER_MAX)]

    @property
    def algo_name(self) -> str:
        return self.algo.name

    @staticmethod
    def _in_range(index: int) -> bool:
        return 0 <= index < PCR_BANK_REGISTER_MAX

    def wants_pcr(self, index: int) -> bool:
        """Tell whether the register is part of the bank's selection."""
        return self._in_range(index) and bool(self.pcr_mask & (1 << index))

    def mark_valid(self, index: int) -> None:
        if not self._in_range(index):
            raise PcrError(f"PCR index {index} out of range")
        self.valid_mask |= 1 << index

    def is_valid(self, index: int) -> bool:
        return self._in_range(index) and bool(self.valid_mask & (1 << index))

    def get_register(self, index: int, algo: str | None = None) -> bytes | None:
        """Return the register value, or None if not selected or algo differs."""
        if algo and algo.lower() != self.algo_name.lower():
            return None
        if not self.wants_pcr(index):
            return None
        return self._registers[index]

    def _require_valid(self, index: int) -> None:
        if not self.is_valid(index):
            raise PcrError(
                f"Unable to extend PCR {self.algo_name}:{index}: register was not initialized"
            )

    def set_locality(self, index: int, locality: int) -> None:
        """Reset the register to zero with the locality in its last byte."""
        self._require_valid(index)
        if not 0 <= locality <= 0xFF:
            raise PcrError(f"Invalid locality {locality}")
        self._registers[index] = bytes(self.algo.digest_size - 1) + bytes([locality])

    def init_from_zero(self) -> None:
        """Set every selected register to zero and mark it valid."""
        for index in range(PCR_BANK_REGISTER_MAX):
            if self.wants_pcr(index):
                self._registers[index] = bytes(self.algo.digest_size)
                self.mark_valid(index)

    def init_from_snapshot_lines(self, lines: Iterable[str]) -> None:
        """Load register values from lines of the form "INDEX ALGO HEXVALUE"."""
        for line in lines:
            words = line.split()
            if len(words) < 2:
                continue
            try:
                index = parse_pcr_index(words[0])
            except PcrError:
                continue
            if self.get_register(index, words[1]) is None or len(words) < 3:
                continue
            try:
                value = bytes.fromhex(words[2].replace(":", ""))
            except ValueError:
                continue
            if not value:
                continue
            if len(value) != self.algo.digest_size:
                log.debug(
                    "Found entry for %s:%u, but value has wrong size %u (expected %u)",
                    self.algo_name, index, len(value), self.algo.digest_size,
                )
                continue
            self._registers[index] = value
            self.mark_valid(index)

    def init_from_snapshot(self, path: str) -> None:
        """Load register values from an EFI variable file holding a snapshot."""
        log.debug("Trying to find PCR values in %s", path)
        try:
            with open(path, "rb") as fp:
                fp.read(4)  # skip the variable attributes
                content = fp.read()
        except OSError as exc:
            raise PcrError(f'Unable to open "{path}": {exc}') from exc
        self.init_from_snapshot_lines(content.decode("utf-8", errors="replace").splitlines())

    def extend(self, index: int, digest: bytes) -> None:
        """Extend a register: new = H(old || digest)."""
        self._require_valid(index)
        if len(digest) != self.algo.digest_size:
            raise PcrError(f"Cannot update PCR {index}: algorithm mismatch")
        self._registers[index] = self.algo.digest(self._registers[index] + bytes(digest))

    def valid_indices(self) -> Iterator[int]:
        """Yield the indices of valid registers in ascending order."""
        return (i for i in range(PCR_BANK_REGISTER_MAX) if self.is_valid(i))

    def format_snapshot(self) -> str:
        """Render the valid registers in snapshot format."""
        return "".join(
            f"{index:02d} {self.algo_name} {self._registers[index].hex()}\n"
            for index in self.valid_indices()
        )