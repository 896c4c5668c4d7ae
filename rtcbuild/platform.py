from __future__ import annotations

import logging
import sys
from typing import Optional

from .errors import UsageError
from .models import Target

logger = logging.getLogger(__name__)

DEFAULT_TARGET_CPU = "x64"
SUPPORTED_TARGET_OS = ("linux", "mac", "win", "android", "ios")
SUPPORTED_TARGET_CPU = ("x64", "x86", "arm64", "arm")

_HOST_PREFIXES = (
    ("linux", "linux"),
    ("darwin", "mac"),
    ("win32", "win"),
    ("cygwin", "win"),
    ("msys", "win"),
)


def detect_platform(system: Optional[str] = None) -> str:
    """Map ``sys.platform`` (or ``system``) to linux, mac or win."""

    system = (system or sys.platform).lower()
    for prefix, platform in _HOST_PREFIXES:
        if system.startswith(prefix):
            return platform
    raise UsageError(f"Unsupported host platform: {system}")


def detect_and_normalize(
    target_os: Optional[str] = None,
    target_cpu: Optional[str] = None,
    system: Optional[str] = None,
) -> Target:
    platform = detect_platform(system)
    target = Target(
        platform=platform,
        target_os=target_os or platform,
        target_cpu=target_cpu or DEFAULT_TARGET_CPU,
    )
    logger.info("Host OS: %s", target.platform)
    logger.info("Target OS: %s", target.target_os)
    logger.info("Target CPU: %s", target.target_cpu)
    return target
