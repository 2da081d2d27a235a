import os

import pytest

from pcroracle.shim import ShimCertError, read_shim_vendor_cert, shim_vendor_cert_path


def _setup(tmp_path, target_name="shim-opensuse.efi"):
    machine_dir = tmp_path / "x86_64"
    machine_dir.mkdir()
    target = machine_dir / target_name
    target.write_bytes(b"EFI")
    os.symlink(target_name, machine_dir / "shim.efi")
    return machine_dir


def test_cert_path_follows_symlink(tmp_path):
    machine_dir = _setup(tmp_path)
    path = shim_vendor_cert_path(str(tmp_path), "x86_64")
    assert path == os.path.realpath(str(machine_dir / "shim-opensuse.der"))


def test_read_cert(tmp_path):
    machine_dir = _setup(tmp_path)
    (machine_dir / "shim-opensuse.der").write_bytes(b"\x30\x82cert")
    assert read_shim_vendor_cert(str(tmp_path), "x86_64") == b"\x30\x82cert"


def test_missing_shim(tmp_path):
    with pytest.raises(ShimCertError):
        shim_vendor_cert_path(str(tmp_path), "aarch64")


def test_wrong_suffix(tmp_path):
    _setup(tmp_path, target_name="shim-opensuse.bin")
    with pytest.raises(ShimCertError, match="suffix"):
        shim_vendor_cert_path(str(tmp_path), "x86_64")


def test_missing_der(tmp_path):
    _setup(tmp_path)
    with pytest.raises(ShimCertError):
        read_shim_vendor_cert(str(tmp_path), "x86_64")