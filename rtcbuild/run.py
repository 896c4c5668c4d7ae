from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from .config import BuildSettings, NamingPatterns, load_settings
from .errors import UsageError
from .models import BuildRequest, split_words
from .pipeline import BuildPipeline, Collaborators
from .platform import detect_platform
from .toolchain import DepotToolsChecker, FilesystemPackager, GitClient, GnNinjaCompiler, SourcePatcher, toolchain_env

logger = logging.getLogger(__name__)

DESCRIPTION = "WebRTC automated build script."

EPILOG = """\
Common branch names are 'branch-heads/nn', where 'nn' is the release number.
Target OS values other than the host include 'android' and 'ios'; target CPU
values are 'x64', 'x86', 'arm64' and 'arm'.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rtcbuild",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-o", dest="outdir", default="out", metavar="OUTDIR", help="Output directory. Default is 'out'.")
    parser.add_argument("-b", dest="branch", default="", metavar="BRANCH", help="Latest revision on git branch. Overrides -r.")
    parser.add_argument("-r", dest="revision", default="", metavar="REVISION", help="Git SHA revision. Default is latest revision.")
    parser.add_argument("-t", dest="target_os", default="", metavar="TARGET_OS", help="Target os for cross-compilation. Default is the host OS.")
    parser.add_argument("-c", dest="target_cpu", default="", metavar="TARGET_CPU", help="Target cpu for cross-compilation. Default is 'x64'.")
    parser.add_argument("-l", dest="blacklist", default="", metavar="BLACKLIST", help="Objects to exclude from the static library, space-separated.")
    parser.add_argument("-e", dest="enable_rtti", default="1", choices=("0", "1"), metavar="ENABLE_RTTI", help="Compile with RTTI enabled. Default is '1'.")
    parser.add_argument("-n", dest="configs", default="Debug Release", metavar="CONFIGS", help="Build configurations, space-separated. Default is 'Debug Release'.")
    parser.add_argument("-x", dest="express", action="store_true", help="Express build mode. Skip repo sync and dependency checks, just build, compile and package.")
    parser.add_argument("-D", dest="debian", action="store_true", help="[Linux] Generate a debian package.")
    parser.add_argument("-d", dest="debug", action="store_true", help="Debug mode. Print all executed commands.")
    parser.add_argument("--config", dest="settings", default=None, metavar="PATH", help="YAML settings file.")
    parser.add_argument("--filename-pattern", default=None, help="Package file name pattern.")
    parser.add_argument("--name-pattern", default=None, help="Package name pattern.")
    parser.add_argument("--version-pattern", default=None, help="Package version pattern.")
    return parser


def request_from_args(
    args: argparse.Namespace,
    settings: BuildSettings,
    environ: Optional[Mapping[str, str]] = None,
) -> BuildRequest:
    patterns: NamingPatterns = settings.patterns.with_environment(environ)
    configs = split_words(args.configs)
    if not configs:
        raise UsageError("-n needs at least one build configuration")
    return BuildRequest(
        outdir=Path(args.outdir).resolve(),
        branch=args.branch,
        revision=args.revision,
        target_os=args.target_os,
        target_cpu=args.target_cpu,
        configs=configs,
        blacklist=split_words(args.blacklist),
        enable_rtti=args.enable_rtti == "1",
        express=args.express,
        debian=args.debian,
        filename_pattern=args.filename_pattern or patterns.filename,
        name_pattern=args.name_pattern or patterns.name,
        version_pattern=args.version_pattern or patterns.version,
    )


def default_collaborators(settings: BuildSettings) -> Collaborators:
    env = toolchain_env(settings.depot_tools_dir, detect_platform())
    return Collaborators(
        vcs=GitClient(env=env),
        checker=DepotToolsChecker(settings.depot_tools_url, settings.depot_tools_dir),
        patcher=SourcePatcher(settings.resource_dir),
        compiler=GnNinjaCompiler(env=env),
        packager=FilesystemPackager(settings.resource_dir),
    )


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: list[str] | None = None, collaborators: Optional[Collaborators] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.debug)

    try:
        settings = load_settings(args.settings)
        request = request_from_args(args, settings, os.environ)
        request.outdir.mkdir(parents=True, exist_ok=True)
        if collaborators is None:
            collaborators = default_collaborators(settings)
    except (UsageError, OSError) as exc:
        parser.print_usage()
        logger.error("%s", exc)
        return 1

    pipeline = BuildPipeline(request, collaborators, settings.repo_url)
    report = pipeline.run()
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.succeeded else 1
