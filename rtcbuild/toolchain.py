"""Default collaborators backed by git, depot_tools, gn/ninja and the local filesystem."""

from __future__ import annotations

import datetime as _dt
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import AcquisitionError, CompileError, DependencyError, PackagingError, ResolutionError
from .packaging import check_package_filename
from .platform import SUPPORTED_TARGET_CPU, SUPPORTED_TARGET_OS
from .utils import CommandError, dump_json, ensure_directory, prepend_path, run_command, sha256_file

logger = logging.getLogger(__name__)

# objects that never belong in the combined static library
DEFAULT_OBJECT_BLACKLIST = ("unittest", "examples", "tools/", "yasm/", "protobuf_lite", "/main.")

FETCH_CONFIGS = {"android": "webrtc_android", "ios": "webrtc_ios"}

HOST_TOOLS: Dict[str, Sequence[str]] = {
    "linux": ("git", "python3", "ar"),
    "mac": ("git", "python3", "libtool"),
    "win": ("git", "python"),
}


def toolchain_env(depot_tools_dir: Path, platform: str) -> Dict[str, str]:
    """Environment overlay that puts depot_tools first on PATH."""

    env = prepend_path([depot_tools_dir])
    if platform == "win":
        env["DEPOT_TOOLS_WIN_TOOLCHAIN"] = "0"
    return env


def _first_sha(ls_remote_output: str) -> str:
    for line in ls_remote_output.splitlines():
        fields = line.split()
        if fields:
            return fields[0]
    return ""


class GitClient:
    """Resolves revisions with plain git and checks out with depot_tools."""

    def __init__(self, env: Optional[Mapping[str, str]] = None) -> None:
        self.env = dict(env or {})

    def branch_head(self, repo_url: str, branch: str) -> str:
        try:
            result = run_command(["git", "ls-remote", repo_url, "--heads", branch])
        except CommandError as exc:
            raise ResolutionError(f"Could not get branch revision for {branch}: {exc.stderr.strip()}") from exc
        sha = _first_sha(result.stdout)
        if not sha:
            raise ResolutionError(f"Branch not found: {branch}")
        return sha

    def latest_revision(self, repo_url: str) -> str:
        try:
            result = run_command(["git", "ls-remote", repo_url, "HEAD"])
        except CommandError as exc:
            raise ResolutionError(f"Could not get latest revision: {exc.stderr.strip()}") from exc
        sha = _first_sha(result.stdout)
        if not sha:
            raise ResolutionError(f"No HEAD revision advertised by {repo_url}")
        return sha

    def revision_number(self, repo_url: str, sha: str) -> int:
        # a treeless bare clone is enough to count commits
        with tempfile.TemporaryDirectory(prefix="rtcbuild-") as tmp:
            try:
                run_command(["git", "clone", "--bare", "--filter=tree:0", repo_url, tmp])
                result = run_command(["git", "rev-list", "--count", sha], cwd=tmp)
            except CommandError as exc:
                raise ResolutionError(f"Could not get revision number for {sha}: {exc.stderr.strip()}") from exc
        try:
            return int(result.stdout.strip())
        except ValueError as exc:
            raise ResolutionError(f"Unexpected revision count output: {result.stdout!r}") from exc

    def checkout(self, target_os: str, outdir: Path, sha: str) -> None:
        logger.info("Checking out WebRTC revision (this will take a while): %s", sha)
        ensure_directory(outdir)
        try:
            if not (outdir / ".gclient").exists():
                fetch_config = FETCH_CONFIGS.get(target_os, "webrtc")
                run_command(["fetch", "--nohooks", fetch_config], cwd=outdir, env=self.env)
            run_command(["gclient", "sync", "--force", "--revision", sha], cwd=outdir, env=self.env)
        except CommandError as exc:
            raise AcquisitionError(f"Checkout of {sha} failed: {exc.stderr.strip()}") from exc


class DepotToolsChecker:
    """Host and project prerequisite checks."""

    def __init__(self, depot_tools_url: str, depot_tools_dir: Path, use_sudo: bool = True) -> None:
        self.depot_tools_url = depot_tools_url
        self.depot_tools_dir = Path(depot_tools_dir)
        self.use_sudo = use_sudo

    def check_host(self, platform: str, target_cpu: str) -> None:
        logger.info("Checking build environment dependencies")
        if target_cpu not in SUPPORTED_TARGET_CPU:
            raise DependencyError(
                f"Unsupported target cpu {target_cpu!r}; expected one of {', '.join(SUPPORTED_TARGET_CPU)}"
            )
        missing = [tool for tool in HOST_TOOLS.get(platform, ("git",)) if shutil.which(tool) is None]
        if missing:
            raise DependencyError(f"Missing host tools: {', '.join(missing)}")
        self.ensure_depot_tools()

    def ensure_depot_tools(self) -> Path:
        logger.info("Checking depot-tools")
        if not self.depot_tools_dir.is_dir():
            try:
                run_command(["git", "clone", self.depot_tools_url, str(self.depot_tools_dir)])
            except CommandError as exc:
                raise DependencyError(f"Could not clone depot_tools: {exc.stderr.strip()}") from exc
        if not self.depot_tools_dir.is_dir():
            raise DependencyError(f"{self.depot_tools_dir} does not exist")
        return self.depot_tools_dir

    def check_project(self, platform: str, outdir: Path, target_os: str) -> None:
        logger.info("Checking WebRTC dependencies")
        src = Path(outdir) / "src"
        if not src.is_dir():
            raise DependencyError(f"No WebRTC source tree at {src}")
        commands: List[List[str]] = []
        if platform == "linux":
            commands.append(
                [
                    str(src / "build" / "install-build-deps.sh"),
                    "--no-syms",
                    "--no-arm",
                    "--no-chromeos-fonts",
                    "--no-nacl",
                    "--no-prompt",
                ]
            )
            if target_os == "android":
                commands.append([str(src / "build" / "install-build-deps-android.sh")])
        for command in commands:
            if self.use_sudo:
                command = ["sudo", *command]
            try:
                run_command(command, cwd=src)
            except CommandError as exc:
                raise DependencyError(f"WebRTC dependency installation failed: {exc.stderr.strip()}") from exc


class SourcePatcher:
    """Switches RTTI on and applies the bundled ``*.patch`` files."""

    RTTI_CONFIG = Path("build") / "config" / "BUILDCONFIG.gn"
    NO_RTTI = '"//build/config/compiler:no_rtti"'
    RTTI = '"//build/config/compiler:rtti"'

    def __init__(self, resource_dir: Path) -> None:
        self.resource_dir = Path(resource_dir)

    def patch_files(self, platform: str) -> List[Path]:
        patches_dir = self.resource_dir / "patches"
        found: List[Path] = []
        for group in ("common", platform):
            found.extend(sorted((patches_dir / group).glob("*.patch")))
        return found

    def apply(self, platform: str, outdir: Path, enable_rtti: bool) -> None:
        logger.info("Patching WebRTC source")
        src = Path(outdir) / "src"
        if enable_rtti:
            self.enable_rtti(src)
        for patch in self.patch_files(platform):
            logger.debug("Applying %s", patch.name)
            try:
                run_command(["git", "apply", str(patch)], cwd=src)
            except CommandError as exc:
                raise AcquisitionError(f"Patch {patch.name} does not apply: {exc.stderr.strip()}") from exc

    def enable_rtti(self, src: Path) -> None:
        config = src / self.RTTI_CONFIG
        try:
            text = config.read_text()
        except OSError as exc:
            raise AcquisitionError(f"Cannot enable RTTI: {exc}") from exc
        config.write_text(text.replace(self.NO_RTTI, self.RTTI))


def gn_args(config: str, target_os: str, target_cpu: str) -> str:
    args = {
        "is_debug": "true" if config == "Debug" else "false",
        "target_os": f'"{target_os}"',
        "target_cpu": f'"{target_cpu}"',
        "is_component_build": "false",
        "rtc_include_tests": "false",
        "treat_warnings_as_errors": "false",
    }
    return " ".join(f"{key}={value}" for key, value in args.items())


def collect_objects(obj_dir: Path, extension: str, blacklist: Iterable[str]) -> List[Path]:
    """Objects under ``obj_dir`` whose relative path contains no blacklisted entry."""

    excluded = [entry for entry in blacklist if entry]
    objects = []
    for path in sorted(obj_dir.rglob(f"*{extension}")):
        relative = "/" + path.relative_to(obj_dir).as_posix()
        if any(entry in relative for entry in excluded):
            continue
        objects.append(path)
    return objects


def library_name(platform: str) -> str:
    return "webrtc_full.lib" if platform == "win" else "libwebrtc_full.a"


class GnNinjaCompiler:
    """Generates and builds one ``out/<config>`` directory per configuration."""

    def __init__(self, env: Optional[Mapping[str, str]] = None) -> None:
        self.env = dict(env or {})

    def compile(
        self,
        platform: str,
        outdir: Path,
        target_os: str,
        target_cpu: str,
        configs: Sequence[str],
        blacklist: Sequence[str],
    ) -> None:
        logger.info("Compiling WebRTC")
        if target_os not in SUPPORTED_TARGET_OS:
            raise CompileError(f"Unsupported target os {target_os!r}")
        src = Path(outdir) / "src"
        excluded = (*DEFAULT_OBJECT_BLACKLIST, *blacklist)
        for config in configs:
            build_dir = Path("out") / config
            logger.info("Building %s (%s/%s)", config, target_os, target_cpu)
            try:
                run_command(
                    ["gn", "gen", build_dir.as_posix(), f"--args={gn_args(config, target_os, target_cpu)}"],
                    cwd=src,
                    env=self.env,
                )
                run_command(["ninja", "-C", build_dir.as_posix()], cwd=src, env=self.env)
            except CommandError as exc:
                raise CompileError(f"{config} build failed: {exc.stderr.strip() or exc.stdout.strip()}") from exc
            self.combine(platform, src / build_dir, excluded)

    def combine(self, platform: str, build_dir: Path, blacklist: Sequence[str]) -> Path:
        extension = ".obj" if platform == "win" else ".o"
        objects = collect_objects(build_dir / "obj", extension, blacklist)
        if not objects:
            raise CompileError(f"No objects to combine in {build_dir}")
        output = build_dir / library_name(platform)
        if output.exists():
            output.unlink()
        response = build_dir / "objects.rsp"
        response.write_text("\n".join(str(path) for path in objects) + "\n")
        if platform == "win":
            command = ["lib.exe", f"/OUT:{output}", f"@{response}"]
        elif platform == "mac":
            command = ["libtool", "-static", "-o", str(output), "-filelist", str(response)]
        else:
            command = ["ar", "-rcs", str(output), f"@{response}"]
        try:
            run_command(command, cwd=build_dir, env=self.env)
        except CommandError as exc:
            raise CompileError(f"Combining {output.name} failed: {exc.stderr.strip()}") from exc
        return output


class FilesystemPackager:
    """Stages build output and turns it into an archive, a manifest or a .deb."""

    SKIPPED_DIRS = {".git", "out", "buildtools"}

    def __init__(self, resource_dir: Path) -> None:
        self.resource_dir = Path(resource_dir)

    def prepare(
        self,
        platform: str,
        outdir: Path,
        filename: str,
        configs: Sequence[str],
        revision_number: int,
    ) -> Path:
        check_package_filename(filename)
        outdir = Path(outdir)
        package_dir = outdir / filename
        if package_dir.exists():
            shutil.rmtree(package_dir)
        ensure_directory(package_dir)

        src = outdir / "src"
        for config in configs:
            library = src / "out" / config / library_name(platform)
            if not library.exists():
                raise PackagingError(f"Missing {config} library: {library}")
            shutil.copy2(library, ensure_directory(package_dir / "lib" / config) / library.name)

        include_dir = package_dir / "include"
        for header in self._headers(src):
            target = include_dir / header.relative_to(src)
            ensure_directory(target.parent)
            shutil.copy2(header, target)

        if self.resource_dir.is_dir():
            for entry in self.resource_dir.iterdir():
                if entry.name == "patches":
                    continue
                if entry.is_dir():
                    shutil.copytree(entry, package_dir / entry.name)
                else:
                    shutil.copy2(entry, package_dir / entry.name)

        (package_dir / "REVISION").write_text(f"{revision_number}\n")
        return package_dir

    def _headers(self, src: Path) -> List[Path]:
        headers = []
        for header in sorted(src.rglob("*.h")):
            parts = header.relative_to(src).parts
            if self.SKIPPED_DIRS.intersection(parts[:-1]):
                continue
            headers.append(header)
        return headers

    @staticmethod
    def archive_path(platform: str, outdir: Path, filename: str) -> Path:
        suffix = ".zip" if platform == "win" else ".tar.gz"
        return Path(outdir) / f"{filename}{suffix}"

    def archive(self, platform: str, outdir: Path, filename: str) -> Path:
        outdir = Path(outdir)
        if not (outdir / filename).is_dir():
            raise PackagingError(f"Nothing staged at {outdir / filename}")
        fmt = "zip" if platform == "win" else "gztar"
        try:
            created = shutil.make_archive(str(outdir / filename), fmt, root_dir=outdir, base_dir=filename)
        except OSError as exc:
            raise PackagingError(f"Archiving {filename} failed: {exc}") from exc
        return Path(created)

    def manifest(self, platform: str, outdir: Path, filename: str) -> Path:
        outdir = Path(outdir)
        archive = self.archive_path(platform, outdir, filename)
        if not archive.exists():
            raise PackagingError(f"Archive not found: {archive}")
        package_dir = outdir / filename
        files = sorted(
            path.relative_to(package_dir).as_posix() for path in package_dir.rglob("*") if path.is_file()
        )
        manifest_path = outdir / f"{filename}.json"
        dump_json(
            manifest_path,
            {
                "file": archive.name,
                "size": archive.stat().st_size,
                "sha256": sha256_file(archive),
                "platform": platform,
                "date": _dt.datetime.now(_dt.timezone.utc).isoformat(),
                "files": files,
            },
        )
        return manifest_path

    def debian(self, outdir: Path, filename: str, name: str, version: str, arch: str) -> Path:
        check_package_filename(filename)
        outdir = Path(outdir)
        package_dir = outdir / filename
        if not package_dir.is_dir():
            raise PackagingError(f"Nothing staged at {package_dir}")
        deb_root = outdir / f"{filename}.debian"
        if deb_root.exists():
            shutil.rmtree(deb_root)
        usr = ensure_directory(deb_root / "usr")
        if (package_dir / "include").is_dir():
            shutil.copytree(package_dir / "include", usr / "include" / name)
        if (package_dir / "lib").is_dir():
            shutil.copytree(package_dir / "lib", usr / "lib" / name)
        control = ensure_directory(deb_root / "DEBIAN") / "control"
        control.write_text(
            "\n".join(
                [
                    f"Package: {name}",
                    f"Version: {version}",
                    f"Architecture: {arch}",
                    "Maintainer: rtcbuild",
                    "Section: libdevel",
                    "Priority: optional",
                    "Description: WebRTC static libraries and headers",
                    "",
                ]
            )
        )
        package = outdir / f"{filename}.deb"
        try:
            run_command(["dpkg-deb", "--build", str(deb_root), str(package)])
        except CommandError as exc:
            raise PackagingError(f"dpkg-deb failed: {exc.stderr.strip()}") from exc
        return package
