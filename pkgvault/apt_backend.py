"""APT / dpkg backend.

Example install output (``apt install -y openssl``)::

    Unpacking openssl (3.0.2-0ubuntu1.9) over (3.0.2-0ubuntu1.8) ...
    Setting up libssl3:amd64 (3.0.2-0ubuntu1.9) ...
    Setting up openssl (3.0.2-0ubuntu1.9) ...
    Processing triggers for man-db (2.10.2-1) ...

Example search output (``apt search zvbi``)::

    Sorting...
    Full Text Search...
    zvbi/jammy 0.2.35-19 amd64
      Vertical Blanking Interval (VBI) utilities
"""
from __future__ import annotations

import re
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Sequence

from .base import Backend
from .models import DEFAULT_OPTIONS, Options, PackageRecord, PackageStatus, StatusTriple
from .reconciler import resolve_status
from .runner import CommandResult
from .tokenizer import Strategy, log_raw, parse_key_values, split_arch, tokenize

MANAGER = "apt"

ENV_NONINTERACTIVE: Mapping[str, str] = MappingProxyType({
    "LC_ALL": "C",
    "DEBIAN_FRONTEND": "noninteractive",
    "DEBCONF_NONINTERACTIVE_SEEN": "true",
})

ARGS_ASSUME_YES = "-y"
ARGS_DRY_RUN = "--dry-run"
ARGS_FIX_BROKEN = "-f"
ARGS_PURGE = "--purge"
ARGS_AUTOREMOVE = "--autoremove"

SETTING_UP_RE = re.compile(r"^Setting up (?P<name>[^\s:]+)(?::(?P<arch>\S+))? \((?P<version>[^)\s]+)\)")
REMOVING_RE = re.compile(r"^Removing (?P<name>[^\s:]+)(?::(?P<arch>\S+))? \((?P<version>[^)\s]+)\)")
SEARCH_HEADER_RE = re.compile(
    r"^(?P<name>[a-z0-9][a-z0-9+.\-]*)/(?P<category>\S+)\s+(?P<version>\S+)\s+(?P<arch>\S+)"
)
UPGRADABLE_RE = re.compile(
    r"^(?P<name>[^\s/]+)/(?P<category>\S+)\s+(?P<candidate>\S+)\s+(?P<arch>\S+)"
    r"\s+\[upgradable from:\s*(?P<version>[^\]\s]+)\s*\]"
)
DPKG_NOT_FOUND_RE = re.compile(r"^dpkg-query: no packages found matching (?P<name>\S+)")
VERSION_RE = re.compile(r"^\d")

DPKG_STATES = {
    "installed": PackageStatus.INSTALLED,
    "config-files": PackageStatus.CONFIG_FILES,
}


def parse_install_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    options = options or DEFAULT_OPTIONS
    packages: List[PackageRecord] = []
    for line in tokenize(text):
        log_raw(manager, line, options.verbose)
        m = SETTING_UP_RE.match(line)
        if not m or not m.group("name"):
            continue
        version = m.group("version")
        packages.append(PackageRecord(
            name=m.group("name"),
            architecture=m.group("arch") or "",
            version=version,
            candidate_version=version,
            status=PackageStatus.INSTALLED,
            source_manager=manager,
        ))
    return packages


def parse_remove_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    options = options or DEFAULT_OPTIONS
    packages: List[PackageRecord] = []
    for line in tokenize(text):
        log_raw(manager, line, options.verbose)
        m = REMOVING_RE.match(line)
        if not m or not m.group("name"):
            continue
        packages.append(PackageRecord(
            name=m.group("name"),
            architecture=m.group("arch") or "",
            version=m.group("version"),
            status=PackageStatus.AVAILABLE,
            source_manager=manager,
        ))
    return packages


def parse_search_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> Dict[str, PackageRecord]:
    """One entry per package name; a later block replaces an earlier one."""
    options = options or DEFAULT_OPTIONS
    packages: Dict[str, PackageRecord] = {}
    for block in tokenize(text, Strategy.BLOCKS):
        for line in block:
            log_raw(manager, line, options.verbose)
        # the first block also carries "Sorting..." / "Full Text Search..."
        header = next((m for m in map(SEARCH_HEADER_RE.match, block) if m), None)
        if header is None:
            continue
        name = header.group("name").strip()
        if not name:
            continue
        packages[name] = PackageRecord(
            name=name,
            architecture=header.group("arch"),
            version=header.group("version"),
            candidate_version=header.group("version"),
            category=header.group("category"),
            source_manager=manager,
        )
    return packages


def parse_list_installed_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    options = options or DEFAULT_OPTIONS
    packages: List[PackageRecord] = []
    for line in tokenize(text):
        log_raw(manager, line, options.verbose)
        parts = line.split()
        if not parts:
            continue
        name, arch = split_arch(parts[0])
        if not name:
            continue
        version = parts[1] if len(parts) > 1 else ""
        packages.append(PackageRecord(
            name=name,
            architecture=arch,
            version=version,
            candidate_version=version,
            status=PackageStatus.INSTALLED,
            source_manager=manager,
        ))
    return packages


def parse_list_upgradable_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    options = options or DEFAULT_OPTIONS
    packages: List[PackageRecord] = []
    for line in tokenize(text):
        log_raw(manager, line, options.verbose)
        m = UPGRADABLE_RE.match(line)
        if not m:
            continue
        packages.append(PackageRecord(
            name=m.group("name"),
            architecture=m.group("arch"),
            version=m.group("version"),
            candidate_version=m.group("candidate"),
            category=m.group("category"),
            status=PackageStatus.UPGRADABLE,
            source_manager=manager,
        ))
    return packages


def parse_package_info_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    """Parse ``apt-cache show``; it prints one deb822 stanza per known version."""
    options = options or DEFAULT_OPTIONS
    packages: List[PackageRecord] = []
    for block in tokenize(text, Strategy.BLOCKS):
        for line in block:
            log_raw(manager, line, options.verbose)
        fields = parse_key_values(block)
        name = fields.get("Package", "").strip()
        if not name:
            continue
        version = fields.get("Version", "")
        packages.append(PackageRecord(
            name=name,
            architecture=fields.get("Architecture", ""),
            version=version,
            candidate_version=version,
            category=fields.get("Section", ""),
            status=PackageStatus.AVAILABLE,
            source_manager=manager,
        ))
    return packages


def parse_status_output(text: str) -> Iterator[StatusTriple]:
    """Parse ``dpkg-query -W --showformat '${binary:Package} ${Status} ${Version}\\n'``.

    stderr is folded into the text, so "no packages found matching" lines show
    up here and map to an unknown status.
    """
    for line in tokenize(text):
        m = DPKG_NOT_FOUND_RE.match(line)
        if m:
            name, _ = split_arch(m.group("name"))
            if name:
                yield StatusTriple(name, PackageStatus.UNKNOWN)
            continue
        parts = line.split()
        if len(parts) < 2 or parts[0].startswith("dpkg-query:"):
            continue
        name, _ = split_arch(parts[0])
        if not name:
            continue
        version = parts[-1] if VERSION_RE.match(parts[-1]) else ""
        state = parts[-2] if version else parts[-1]
        yield StatusTriple(name, DPKG_STATES.get(state, PackageStatus.AVAILABLE), version)


def dpkg_not_found(returncode: int, output: str) -> bool:
    return returncode == 1 or "no packages found matching" in output


class AptBackend(Backend):
    name = MANAGER
    binary = "apt"
    env = ENV_NONINTERACTIVE

    def _flags(self, options: Options) -> List[str]:
        flags: List[str] = []
        if options.dry_run:
            flags.append(ARGS_DRY_RUN)
        if options.assume_yes and not options.interactive:
            flags.append(ARGS_ASSUME_YES)
        return flags

    def install(self, packages: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        args = ["apt", "install", ARGS_FIX_BROKEN, *packages, *self._flags(options)]
        return self._execute(args, "install", options, parse_install_output)

    def remove(self, packages: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        args = ["apt", "remove", ARGS_FIX_BROKEN, ARGS_PURGE, ARGS_AUTOREMOVE, *packages, *self._flags(options)]
        return self._execute(args, "remove", options, parse_remove_output)

    def search(self, keywords: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        result = self._run(["apt", "search", *keywords], "search", options)
        pending = parse_search_output(result.output, manager=self.name, options=options)
        return resolve_status(
            pending,
            lambda names: self._query_status(names, options),
            parse_status_output,
            self.name,
        )

    def _query_status(self, names: Sequence[str], options: Options) -> CommandResult:
        args = ["dpkg-query", "-W", "--showformat", "${binary:Package} ${Status} ${Version}\\n", *names]
        return self._run(args, "status query", options, combine_stderr=True, not_found=dpkg_not_found)

    def list_installed(self, options: Optional[Options] = None) -> List[PackageRecord]:
        args = ["dpkg-query", "-W", "-f", "${binary:Package} ${Version}\\n"]
        return self._query(args, "list installed", options, parse_list_installed_output)

    def list_upgradable(self, options: Optional[Options] = None) -> List[PackageRecord]:
        return self._query(["apt", "list", "--upgradable"], "list upgradable", options, parse_list_upgradable_output)

    def upgrade(self, packages: Sequence[str] = (), options: Optional[Options] = None) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        if packages:
            args = ["apt", "install", "--only-upgrade", *packages, *self._flags(options)]
        else:
            args = ["apt", "upgrade", *self._flags(options)]
        return self._execute(args, "upgrade", options, parse_install_output)

    def refresh(self, options: Optional[Options] = None) -> None:
        options = options or DEFAULT_OPTIONS
        if options.interactive:
            self.runner.run_interactive(["apt", "update"], "refresh", env=self.env)
            return
        result = self._run(["apt", "update"], "refresh", options)
        for line in tokenize(result.output):
            log_raw(self.name, line, options.verbose)

    def detail(self, package: str, options: Optional[Options] = None) -> List[PackageRecord]:
        # "E: No packages found" (exit 100) just means there is nothing to show
        return self._query(
            ["apt-cache", "show", package],
            "info",
            options,
            parse_package_info_output,
            combine_stderr=True,
            not_found=lambda returncode, output: "No packages found" in output,
        )
