"""Command line front end for PCR prediction."""

from __future__ import annotations

import argparse
import enum
import logging
import sys
from dataclasses import dataclass, field
from typing import Sequence

from .pcr import PcrError, PcrSelection, selection_valid_string
from .predictor import Predictor, PredictorError, parse_stop_event

log = logging.getLogger(__name__)

DEFAULT_TARGET_PLATFORM = "tpm2.0"
SUPPORTED_RSA_BITS = (2048, 3072, 4096)

USAGE = """\
Usage:
pcr-oracle [options] pcr-index [updates...]

The following options are recognized:
  --from SOURCE          Initialize PCR predictor from indicated source (see below)
  -A name, --algorithm name
                         Use hash algorithm <name>. Defaults to sha256
  -F name, --format name
                         Specify how to display the resulting PCR values. The default is "plain",
                         which just prints the value as a hex string. When using "tpm2-tools", the
                         output string is formatted to resemble the output of tpm2_pcrread.
                         Finally, "binary" writes our the raw binary data so that it can be consumed
                         tpm2_policypcr.
  --stop-event TYPE=ARG
                         During eventlog based prediction, stop processing the event log at the indicated
                         event. Event TYPE can be one of grub-command, grub-file.
                         The meaning of event ARG depends on the type. Possible examples are
                         grub-command=cryptomount or grub-file=grub.cfg
  --after, --before
                         The default behavior when using --stop-event is to stop processing the
                         event log before the indicated event. Using the --after option instructs
                         pcr-oracle to stop after processing the event.
  --verify SOURCE        After applying all updates, compare the prediction against the given SOURCE (see below).
  --tpm-eventlog PATH
                         Specify a different TPM event log to process.

The pcr-index argument can be one or more PCR indices or index ranges, separated by comma.
Using "all" selects all applicable PCR registers.

Valid PCR sources for the --from and --verify options include:
  zero                   Initialize PCR state to all zero
  current                Set the PCR state to the current state of the host's PCR
  snapshot               Read the PCR state from a snapshot taken during boot (GrubPcrSnapshot EFI variable)
  eventlog               Predict the PCR state using the event log, by substituting current values. Only valid
                         as argument to --from.

The PCR index can be followed by zero or more pairs of data describing how to extend the PCR.
Each pair is a type, and and argument. These types are currently recognized:
  string                 The PCR is extended with the string argument.
  file                   The argument is taken as a file name. The PCR is extended with the file's content.
  eventlog               Process the eventlog and apply updates for all events possible.

After the PCR predictor has been extended with all updates specified, its value is printed to standard output.
"""


class UsageError(Exception):
    """Raised when the command line cannot be used as given."""


class Action(enum.Enum):
    """The operation requested on the command line."""

    PREDICT = "predict"
    CREATE_AUTH_POLICY = "create-authorized-policy"
    STORE_PUBLIC_KEY = "store-public-key"
    SEAL = "seal-secret"
    UNSEAL = "unseal-secret"
    SIGN = "sign"
    SELFTEST = "self-test"
    RSATEST = "rsa-test"


@dataclass
class Options:
    """The parsed command line."""

    action: Action | None = None
    show_help: bool = False
    selection: PcrSelection | None = None
    updates: list[str] = field(default_factory=list)
    source: str | None = None
    algorithm: str | None = None
    output_format: str | None = None
    stop_event: str | None = None
    stop_after: bool = False
    tpm_eventlog: str | None = None
    verify: str | None = None
    use_pesign: bool = False
    boot_entry: str | None = None
    create_testcase: str | None = None
    replay_testcase: str | None = None
    private_key: str | None = None
    public_key: str | None = None
    rsa_generate_key: bool = False
    rsa_bits: int = 2048
    srk_alg: str = "RSA"
    input: str | None = None
    output: str | None = None
    authorized_policy: str | None = None
    pcr_policy: str | None = None
    policy_name: str | None = None
    target_platform: str = DEFAULT_TARGET_PLATFORM
    compare_current: bool = False
    debug: int = 0


class _Parser(argparse.ArgumentParser):
    def error(self, message: str):  # type: ignore[override]
        raise UsageError(message)


class _DeprecatedTargetOption(argparse.Action):
    def __call__(self, parser, namespace, values, option_string=None):
        log.warning("Detected %s option; please use --target-platform instead", option_string)
        namespace.target_platform = values


def _build_parser() -> _Parser:
    parser = _Parser(prog="pcr-oracle", add_help=False)
    add = parser.add_argument
    add("-h", "--help", dest="show_help", action="store_true")
    add("--from", dest="source")
    add("-Z", "--from-zero", dest="source", action="store_const", const="zero")
    add("-C", "--from-current", dest="source", action="store_const", const="current")
    add("-S", "--from-snapshot", dest="source", action="store_const", const="snapshot")
    add("-L", "--from-eventlog", dest="source", action="store_const", const="eventlog")
    add("-A", "--algorithm", dest="algorithm")
    add("-F", "--format", dest="output_format")
    add("--stop-event", dest="stop_event")
    add("--tpm-eventlog", dest="tpm_eventlog")
    add("--after", dest="stop_after", action="store_true")
    add("--before", dest="stop_after", action="store_false")
    add("--verify", dest="verify")
    add("--use-pesign", dest="use_pesign", action="store_true")
    add("--boot-entry", "--next-kernel", dest="boot_entry")
    add("--create-testcase", dest="create_testcase")
    add("--replay-testcase", dest="replay_testcase")
    add("--private-key", dest="private_key")
    add("--public-key", dest="public_key")
    add("--rsa-generate-key", dest="rsa_generate_key", action="store_true")
    add("--rsa-bits", dest="rsa_bits")
    add("--ecc-srk", dest="srk_alg", action="store_const", const="ECC")
    add("--input", dest="input")
    add("--output", dest="output")
    add("--authorized-policy", dest="authorized_policy")
    add("--pcr-policy", dest="pcr_policy")
    add("--key-format", "--policy-format", action=_DeprecatedTargetOption)
    add("--policy-name", dest="policy_name")
    add("--target-platform", dest="target_platform")
    add("--compare-current", dest="compare_current", action="store_true")
    add("-d", "--debug", dest="debug", action="count", default=0)
    add("words", nargs="*")
    parser.set_defaults(stop_after=False, srk_alg="RSA", target_platform=None)
    return parser


def _parse_action(words: list[str]) -> tuple[Action, list[str]]:
    if not words:
        raise UsageError("Missing argument(s)")
    word, rest = words[0], words[1:]
    try:
        return Action(word), rest
    except ValueError:
        pass
    # Backward compatibility: a bare PCR selection means "predict".
    if selection_valid_string(word):
        return Action.PREDICT, words
    raise UsageError(f'Unknown action "{word}"')


def _parse_selection(rest: list[str], algorithm: str | None) -> PcrSelection:
    if not rest:
        raise UsageError("Missing argument(s)")
    spec = rest.pop(0)
    try:
        return PcrSelection.parse(algorithm, spec)
    except PcrError as exc:
        raise UsageError(str(exc)) from None


def parse_args(argv: Sequence[str] | None = None) -> Options:
    """Parse and validate the command line."""
    args = list(sys.argv[1:] if argv is None else argv)
    ns = _build_parser().parse_intermixed_args(args)
    words = ns.words
    values = {k: v for k, v in vars(ns).items() if k != "words"}
    rsa_bits_text = values.pop("rsa_bits")
    opts = Options(**{k: v for k, v in values.items() if v is not None})

    if opts.show_help:
        return opts

    opts.action, rest = _parse_action(list(words))

    if opts.replay_testcase and opts.create_testcase:
        raise UsageError("--create-testcase and --replay-testcase are mutually exclusive")
    if not opts.replay_testcase and opts.compare_current:
        raise UsageError("--compare-current is only valid for --replay-testcase")

    if rsa_bits_text is not None:
        if rsa_bits_text not in {str(bits) for bits in SUPPORTED_RSA_BITS}:
            raise UsageError(f"Unsupported RSA bits: {rsa_bits_text}")
        opts.rsa_bits = int(rsa_bits_text)

    action = opts.action
    if action is Action.PREDICT:
        opts.selection = _parse_selection(rest, opts.algorithm)
    elif action is Action.STORE_PUBLIC_KEY:
        if opts.private_key is None:
            raise UsageError("You need to specify the RSA secret key using --private-key option")
        if opts.public_key is None and opts.output:
            opts.public_key = opts.output
    elif action is Action.CREATE_AUTH_POLICY:
        if opts.input is not None:
            log.warning("Ignoring --input option when creating authorized policy")
        if opts.output is not None:
            log.warning("Ignoring --output option when creating authorized policy")
        if opts.private_key is None:
            raise UsageError(
                "You need to specify the --private-key option when creating an authorized policy"
            )
        opts.selection = _parse_selection(rest, opts.algorithm)
    elif action is Action.SEAL:
        if opts.authorized_policy is None:
            opts.selection = _parse_selection(rest, opts.algorithm)
    elif action is Action.UNSEAL:
        if rest and selection_valid_string(rest[0]):
            opts.selection = _parse_selection(rest, opts.algorithm)
    elif action is Action.SIGN:
        if opts.private_key is None:
            raise UsageError("You need to specify the --private-key option when signing a policy")
        if opts.output is None:
            raise UsageError("You need to specify the --output option when signing a policy")
        opts.selection = _parse_selection(rest, opts.algorithm)

    if rest:
        raise UsageError("Excess argument(s)")
    opts.updates = rest
    return opts


def _predict(opts: Options) -> int:
    if opts.replay_testcase or opts.create_testcase:
        raise PredictorError("Recording and replaying test cases is not supported")
    if opts.stop_event and opts.source != "eventlog":
        raise UsageError("--stop-event only makes sense when using event log")
    if opts.selection is None:
        raise PredictorError(f"BUG: action {opts.action.value} should have parsed a PCR selection")

    predictor = Predictor(opts.selection, opts.source, opts.output_format)
    if opts.stop_event:
        parse_stop_event(opts.stop_event, opts.stop_after)

    predictor.update_all(opts.updates)

    if opts.verify:
        print(f'Verifying predicted state versus "{opts.verify}"')
        mismatches, lines = predictor.verify(opts.verify)
        for line in lines:
            print(line)
        if mismatches:
            print(f"Error: Found {mismatches} mismatches", file=sys.stderr)
        return 1 if mismatches else 0

    output = predictor.report()
    if opts.output_format and opts.output_format.lower() == "binary":
        sys.stdout.flush()
        sys.stdout.buffer.write(output)
        sys.stdout.buffer.flush()
    else:
        sys.stdout.write(output.decode())
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line program and return its exit status."""
    try:
        opts = parse_args(argv)
    except UsageError as exc:
        print(exc, file=sys.stderr)
        print("\n" + USAGE, file=sys.stderr, end="")
        return 1

    if opts.show_help:
        print(USAGE, file=sys.stderr, end="")
        return 0

    logging.basicConfig(
        level=logging.DEBUG if opts.debug else logging.INFO,
        format="%(message)s",
        stream=sys.stderr,
    )

    try:
        if opts.action is not Action.PREDICT:
            raise PredictorError(f'Action "{opts.action.value}" is not supported')
        return _predict(opts)
    except UsageError as exc:
        print(exc, file=sys.stderr)
        print("\n" + USAGE, file=sys.stderr, end="")
        return 1
    except (PredictorError, PcrError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())