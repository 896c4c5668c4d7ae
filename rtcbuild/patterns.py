"""Package naming patterns.

A pattern is plain text with ``%token%`` placeholders, for example the
default archive name ``webrtc-%rn%-%sr%-%to%-%tc%``. Every known token is
replaced by a value taken from a :class:`~rtcbuild.models.PackageContext`;
anything else, including unknown ``%tokens%``, is copied through unchanged.
"""

from __future__ import annotations

import re
from typing import Callable, Dict, Mapping, Optional

from .models import BuildRequest, PackageContext, PackageDescriptor

TokenResolver = Callable[[PackageContext], str]

TOKENS: Dict[str, TokenResolver] = {
    "%p%": lambda context: context.platform,
    "%to%": lambda context: context.target_os,
    "%tc%": lambda context: context.target_cpu,
    "%b%": lambda context: context.branch,
    "%r%": lambda context: context.revision,
    "%rn%": lambda context: str(context.revision_number),
    "%sr%": lambda context: context.short_sha,
}


def _token_regex(tokens: Mapping[str, TokenResolver]) -> "re.Pattern[str]":
    # longest first so overlapping tokens never shadow each other
    ordered = sorted(tokens, key=len, reverse=True)
    return re.compile("|".join(re.escape(token) for token in ordered))


_TOKEN_RE = _token_regex(TOKENS)


def interpret(
    pattern: str,
    context: PackageContext,
    tokens: Optional[Mapping[str, TokenResolver]] = None,
) -> str:
    """Resolve every known token of ``pattern`` against ``context``.

    Substitution is a single left-to-right pass, so a substituted value is
    never scanned for tokens again.
    """

    table = TOKENS if tokens is None else tokens
    if not table:
        return pattern
    regex = _TOKEN_RE if tokens is None else _token_regex(table)
    return regex.sub(lambda match: table[match.group(0)](context), pattern)


def describe_package(request: BuildRequest, context: PackageContext) -> PackageDescriptor:
    return PackageDescriptor(
        filename=interpret(request.filename_pattern, context),
        name=interpret(request.name_pattern, context),
        version=interpret(request.version_pattern, context),
    )
