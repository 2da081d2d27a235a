"""Locate and read the vendor certificate shipped alongside the shim loader."""

from __future__ import annotations

import logging
import os
import platform

log = logging.getLogger(__name__)

EFI_INSTALL_DIR = "/usr/share/efi"


class ShimCertError(Exception):
    """Raised when the shim vendor certificate cannot be located or read."""


def shim_vendor_cert_path(install_dir: str = EFI_INSTALL_DIR, machine: str | None = None) -> str:
    """Return the path of the .der certificate belonging to the installed shim.efi.

    shim.efi is usually a symlink to shim-$OS.efi; the embedded vendor
    certificate is shipped as shim-$OS.der in the same directory.
    """
    machine = machine or platform.machine()
    log.debug("Locating shim vendor cert in %s/%s", install_dir, machine)
    path = os.path.join(install_dir, machine, "shim.efi")
    try:
        real = os.path.realpath(path, strict=True)
    except OSError as exc:
        raise ShimCertError(f"{path}: {exc}") from exc
    if len(real) <= 4 or not real.endswith(".efi"):
        raise ShimCertError(f"{path}: does not have suffix .efi")
    return real[:-4] + ".der"


def read_shim_vendor_cert(install_dir: str = EFI_INSTALL_DIR, machine: str | None = None) -> bytes:
    """Read the shim vendor certificate."""
    path = shim_vendor_cert_path(install_dir, machine)
    try:
        with open(path, "rb") as fp:
            return fp.read()
    except OSError as exc:
        raise ShimCertError(f"Unable to read {path}: {exc}") from exc