from __future__ import annotations

import logging
import re
from pathlib import Path, PureWindowsPath
from typing import Dict, Sequence

from .collaborators import Packager
from .errors import BuildError, PackagingError
from .models import PackageDescriptor

logger = logging.getLogger(__name__)

DEBIAN_ARCHITECTURES: Dict[str, str] = {
    "x64": "amd64",
    "x86": "i386",
    "arm": "armhf",
    "arm64": "arm64",
}


# entries of the output directory a package must never replace
RESERVED_PACKAGE_NAMES = frozenset({"src", "out", ".gclient", ".gclient_entries"})


def check_package_filename(filename: str) -> str:
    """Reject file names that would stage the package over the build tree."""

    if not filename.strip():
        raise PackagingError("Package filename is empty")
    if PureWindowsPath(filename).drive:
        raise PackagingError(f"Package filename must be relative: {filename!r}")
    parts = re.split(r"[\\/]", filename)
    if any(part in ("", ".", "..") for part in parts):
        raise PackagingError(f"Package filename has an empty, '.' or '..' component: {filename!r}")
    if parts[0] in RESERVED_PACKAGE_NAMES:
        raise PackagingError(f"Package filename clashes with the build tree: {filename!r}")
    return filename


def debian_arch(target_cpu: str) -> str:
    try:
        return DEBIAN_ARCHITECTURES[target_cpu]
    except KeyError as exc:
        raise PackagingError(f"No debian architecture for target cpu: {target_cpu}") from exc


def dispatch_package(
    packager: Packager,
    descriptor: PackageDescriptor,
    platform: str,
    outdir: Path,
    configs: Sequence[str],
    revision_number: int,
    debian: bool,
    target_cpu: str,
) -> Dict[str, object]:
    """Stage the build output, then produce either a debian package or an archive plus manifest."""

    check_package_filename(descriptor.filename)
    logger.info("Packaging WebRTC: %s", descriptor.filename)
    try:
        staged = packager.prepare(platform, outdir, descriptor.filename, configs, revision_number)
        details: Dict[str, object] = {
            "filename": descriptor.filename,
            "staged": str(staged),
        }
        if debian:
            arch = debian_arch(target_cpu)
            package = packager.debian(outdir, descriptor.filename, descriptor.name, descriptor.version, arch)
            details.update({"strategy": "debian", "arch": arch, "package": str(package)})
        else:
            archive = packager.archive(platform, outdir, descriptor.filename)
            manifest = packager.manifest(platform, outdir, descriptor.filename)
            details.update({"strategy": "archive", "archive": str(archive), "manifest": str(manifest)})
    except PackagingError:
        raise
    except BuildError as exc:
        raise PackagingError(exc.message) from exc
    return details
