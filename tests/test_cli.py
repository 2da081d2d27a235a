import pytest

from pcroracle.cli import Action, UsageError, main, parse_args
from pcroracle.pcr import algorithm_by_name


def test_parse_predict_action():
    opts = parse_args(["predict", "7"])
    assert opts.action is Action.PREDICT
    assert opts.selection.pcr_mask == 1 << 7
    assert opts.selection.algo.name == "sha256"


def test_bare_selection_means_predict():
    opts = parse_args(["0,2"])
    assert opts.action is Action.PREDICT
    assert opts.selection.pcr_mask == (1 << 0) | (1 << 2)


def test_options_after_positionals():
    opts = parse_args(["predict", "7", "-A", "sha1", "-Z"])
    assert opts.selection.algo == algorithm_by_name("sha1")
    assert opts.source == "zero"


def test_missing_action():
    with pytest.raises(UsageError):
        parse_args([])


def test_unknown_action():
    with pytest.raises(UsageError, match="Unknown action"):
        parse_args(["frobnicate"])


def test_excess_arguments_rejected():
    with pytest.raises(UsageError, match="Excess"):
        parse_args(["predict", "7", "string", "hello"])


def test_bad_algorithm_is_usage_error():
    with pytest.raises(UsageError):
        parse_args(["-A", "md5", "predict", "7"])


@pytest.mark.parametrize("bits", [2048, 3072, 4096])
def test_rsa_bits_accepted(bits):
    assert parse_args(["--rsa-bits", str(bits), "self-test"]).rsa_bits == bits


def test_rsa_bits_rejected():
    with pytest.raises(UsageError, match="Unsupported RSA bits"):
        parse_args(["--rsa-bits", "1024", "self-test"])


def test_key_format_sets_target_platform():
    opts = parse_args(["--key-format", "systemd", "self-test"])
    assert opts.target_platform == "systemd"


def test_default_target_platform():
    assert parse_args(["self-test"]).target_platform == "tpm2.0"


def test_testcase_options_exclusive():
    with pytest.raises(UsageError, match="mutually exclusive"):
        parse_args(["--create-testcase", "a", "--replay-testcase", "b", "predict", "7"])


def test_compare_current_needs_replay():
    with pytest.raises(UsageError, match="--replay-testcase"):
        parse_args(["--compare-current", "predict", "7"])


def test_sign_needs_private_key():
    with pytest.raises(UsageError, match="--private-key"):
        parse_args(["--output", "out", "sign", "7"])


def test_store_public_key_uses_output():
    opts = parse_args(["--private-key", "priv.pem", "--output", "pub.tpm", "store-public-key"])
    assert opts.public_key == "pub.tpm"


def test_before_after_flags():
    assert parse_args(["--after", "predict", "7"]).stop_after is True
    assert parse_args(["--after", "--before", "predict", "7"]).stop_after is False


def test_main_plain_report(capsys):
    assert main(["-Z", "predict", "7"]) == 0
    out = capsys.readouterr().out
    assert out == "sha256:7 " + "00" * 32 + "\n"


def test_main_sha1_report(capsys):
    assert main(["-A", "sha1", "4"]) == 0
    assert capsys.readouterr().out == "sha1:4 " + "00" * 20 + "\n"


def test_main_tpm2_tools_report(capsys):
    assert main(["-F", "tpm2-tools", "predict", "7"]) == 0
    assert capsys.readouterr().out == "  7 : 0x" + "00" * 32 + "\n"


def test_main_binary_report(capsysbinary):
    assert main(["-F", "binary", "predict", "0,1"]) == 0
    assert capsysbinary.readouterr().out == bytes(64)


def test_main_all_reports_every_register(capsys):
    assert main(["predict", "all"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 24
    assert lines[0].startswith("sha256:0 ")
    assert lines[-1].startswith("sha256:23 ")


def test_main_verify_zero(capsys):
    assert main(["--verify", "zero", "predict", "7"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0] == 'Verifying predicted state versus "zero"'
    assert out[1].endswith(" OK")


def test_main_unsupported_format(capsys):
    assert main(["-F", "yaml", "predict", "7"]) == 1
    assert "Unsupported output format" in capsys.readouterr().err


def test_main_stop_event_needs_eventlog(capsys):
    assert main(["--stop-event", "grub-file=grub.cfg", "predict", "7"]) == 1
    assert "--stop-event" in capsys.readouterr().err


def test_main_usage_error_returns_one(capsys):
    assert main(["frobnicate"]) == 1
    assert "Usage:" in capsys.readouterr().err


def test_main_help(capsys):
    assert main(["-h"]) == 0
    assert "Usage:" in capsys.readouterr().err


def test_main_unsupported_action(capsys):
    assert main(["self-test"]) == 1
    assert "not supported" in capsys.readouterr().err