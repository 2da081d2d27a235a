# pcroracle

`pcroracle` predicts the values of TPM Platform Configuration Registers
(PCRs). It holds a bank of registers for one hash algorithm, starts it
from a known state (all zero, or the PCR snapshot that GRUB leaves in an
EFI variable), applies extend operations, and reports the result in a
form you can compare with a real TPM or pass on to policy tools.

## Installation

```
pip install .
```

This installs the `pcr-oracle` command. The package needs only the
Python standard library.

## Command line

```
pcr-oracle [options] predict PCR-SPEC
pcr-oracle [options] PCR-SPEC
```

`PCR-SPEC` is one or more PCR indices (0 to 23) or index ranges,
separated by commas, such as `7` or `0-4,7,9`. `all` selects every
register. A bare `PCR-SPEC` is taken as `predict`.

The command loads the selected registers from the initial source and
prints each one. No further words may follow `PCR-SPEC`; extend
operations are applied through the library (see below).

Options:

- `--from SOURCE`, `-Z` (`zero`), `-S` (`snapshot`): where the initial
  values come from. The default is `zero`. `snapshot` reads
  `/sys/firmware/efi/efivars/GrubPcrSnapshot-7ce323f2-b841-4d30-a0e9-5474a76c9a3f`,
  skipping the four attribute bytes and reading lines of the form
  `INDEX ALGO HEXVALUE`.
- `-A NAME`, `--algorithm NAME`: `sha1`, `sha256` (default), `sha384`
  or `sha512`.
- `-F NAME`, `--format NAME`: `plain` (default, `sha256:9 <hex>`),
  `tpm2-tools` (`  9 : 0x<HEX>`, as `tpm2_pcrread` shows it) or
  `binary` (the raw register bytes, one after another).
- `--verify SOURCE`: compare the prediction with `zero` or `snapshot`
  and print `OK`, `MISMATCH; actual=...` or `MISSING` for each register.
  Registers that are still zero and absent from the source are skipped.
  The exit status is 1 when anything differs.
- `-d`, `--debug`: print debugging messages to standard error.
- `-h`, `--help`: print the usage text and exit.

Errors are reported on standard error with exit status 1.

Example:

```
pcr-oracle --from snapshot --verify snapshot 0-7
pcr-oracle -F tpm2-tools 7,9
```

## Library use

```python
from pcroracle.pcr import PcrSelection
from pcroracle.predictor import Predictor

selection = PcrSelection.parse("sha256", "9")
predictor = Predictor(selection, "zero", "plain")
predictor.update_string(9, "hello")
print(predictor.report().decode(), end="")
```

`Predictor` offers:

- `update_string(pcr_index, value)` and `update_file(pcr_index, filename)`,
  which extend a register with the digest of a string or of a file's
  contents;
- `update_all(args)`, which applies a word list such as
  `["9", "string", "hello", "7", "file", "/boot/vmlinuz"]`; the index may
  be left out when the selection holds exactly one PCR
  (`default_pcr_index()`), and `eventlog` words are skipped;
- `verify(source)`, returning the number of mismatches and the report
  lines;
- `report()`, returning the output as bytes in the chosen
  `OutputFormat`.

`pcroracle.pcr` provides `PcrBank` (`extend`, `set_locality`,
`init_from_zero`, `init_from_snapshot`, `init_from_snapshot_lines`,
`format_snapshot`, `valid_indices`), `HashAlgorithm`,
`algorithm_by_name`, `parse_pcr_index`, `parse_pcr_mask` and
`selection_valid_string`. Invalid input raises `PcrError`;
`pcroracle.predictor` raises `PredictorError`.

`pcroracle.predictor.parse_stop_event` parses `grub-command=ARG` and
`grub-file=ARG` specifications into a `StopEvent`.

`pcroracle.shim` has `shim_vendor_cert_path` and
`read_shim_vendor_cert`, which resolve `/usr/share/efi/<machine>/shim.efi`
and return the `.der` certificate installed next to it, raising
`ShimCertError` when it cannot be found.

## What it does not do

- It does not talk to a TPM: `--from current` and `--verify current`
  fail.
- It does not read or replay the TPM event log: `--from eventlog` (`-L`)
  fails, and `--stop-event`, `--tpm-eventlog`, `--boot-entry` and
  `--use-pesign` have no effect beyond being accepted.
- It does not seal or unseal secrets, sign policies, create authorized
  policies, store public keys or run TPM self tests. The actions
  `seal-secret`, `unseal-secret`, `sign`, `create-authorized-policy`,
  `store-public-key`, `self-test` and `rsa-test` are parsed and checked
  but then reported as not supported.
- It does not record or replay test cases (`--create-testcase`,
  `--replay-testcase`).