"""DNF / RPM backend.

``dnf list installed`` prints fixed columns, wrapping long names onto their
own line::

    Installed Packages
    NetworkManager.x86_64          1:1.40.16-15.el8_9          @baseos
    python3-setuptools-wheel.noarch
                                   39.2.0-7.el8                @baseos

``dnf search --showduplicates`` groups hits under banner lines::

    ===== Name Exactly Matched: gzip =====
    gzip-1.9-13.el8_5.x86_64 : The GNU data compression program
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from .base import Backend
from .models import DEFAULT_OPTIONS, Options, PackageRecord, PackageStatus, StatusTriple
from .reconciler import resolve_status
from .runner import CommandResult
from .tokenizer import Strategy, log_raw, parse_key_values, tokenize

logger = logging.getLogger(__name__)

MANAGER = "dnf"

ARGS_ASSUME_YES = "-y"
ARGS_TEST_TRANSACTION = "--setopt=tsflags=test"
ARGS_SHOW_DUPLICATES = "--showduplicates"

EXACT_SECTION = "Name Exactly Matched"

COLUMN_RE = re.compile(r"^(?P<name>\S+)\.(?P<arch>[^.\s]+)\s+(?P<version>\S+)\s+(?P<repo>\S+)\s*$")
NEVRA_RE = re.compile(r"^(?P<name>.+)-(?P<version>(?:\d+:)?\d[^-]*-[^-]+)\.(?P<arch>[^.]+)$")
ERASING_RE = re.compile(r"^\s*(?:Erasing|Removing)\s*:\s*(?P<nevra>\S+)")
TRANSACTION_SUMMARY_RE = re.compile(r"^(?:Installed|Upgraded|Reinstalled|Downgraded):\s*$")
RPM_NOT_INSTALLED_RE = re.compile(r"^package (?P<name>\S+) is not installed")
PACKAGE_LIST_HEADERS = {
    "Installed Packages": PackageStatus.INSTALLED,
    "Available Packages": PackageStatus.AVAILABLE,
}


def split_nevra(token: str) -> Optional[Dict[str, str]]:
    """Split ``name-[epoch:]version-release.arch``; None when it does not fit."""
    m = NEVRA_RE.match(token.strip())
    if not m or not m.group("name"):
        return None
    return m.groupdict()


def unwrap_columns(lines: Iterable[str]) -> Iterator[str]:
    """Re-join listing rows that dnf wrapped after an over-long name."""
    held = None
    for line in lines:
        if held is not None:
            if line[:1].isspace() and line.strip():
                yield f"{held} {line.strip()}"
                held = None
                continue
            yield held
            held = None
        stripped = line.strip()
        if stripped and not line[:1].isspace() and len(stripped.split()) == 1 and "." in stripped:
            held = stripped
            continue
        yield line
    if held is not None:
        yield held


def _column_records(
    text: str,
    manager: str,
    options: Options,
    status: PackageStatus,
) -> List[PackageRecord]:
    packages: List[PackageRecord] = []
    for line in unwrap_columns(tokenize(text)):
        log_raw(manager, line, options.verbose)
        m = COLUMN_RE.match(line)
        if not m:
            continue
        repo = m.group("repo")
        if status == PackageStatus.INSTALLED and not repo.startswith("@"):
            continue
        version = m.group("version")
        packages.append(PackageRecord(
            name=m.group("name"),
            architecture=m.group("arch"),
            version="" if status == PackageStatus.UPGRADABLE else version,
            candidate_version=version,
            category=repo.lstrip("@"),
            status=status,
            source_manager=manager,
        ))
    return packages


def parse_install_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    """Parse ``name.arch version @repo`` rows and a transaction's ``Installed:`` summary."""
    options = options or DEFAULT_OPTIONS
    packages = _column_records(text, manager, options, PackageStatus.INSTALLED)

    in_summary = False
    for line in tokenize(text):
        if TRANSACTION_SUMMARY_RE.match(line):
            in_summary = True
            continue
        if not in_summary:
            continue
        if not line[:1].isspace():
            in_summary = False
            continue
        for token in line.split():
            parts = split_nevra(token)
            if parts is None:
                continue
            packages.append(PackageRecord(
                name=parts["name"],
                architecture=parts["arch"],
                version=parts["version"],
                candidate_version=parts["version"],
                status=PackageStatus.INSTALLED,
                source_manager=manager,
            ))
    return packages


parse_list_installed_output = parse_install_output


def parse_remove_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    options = options or DEFAULT_OPTIONS
    packages: List[PackageRecord] = []
    for line in tokenize(text):
        log_raw(manager, line, options.verbose)
        m = ERASING_RE.match(line)
        if not m:
            continue
        parts = split_nevra(m.group("nevra"))
        if parts is None:
            continue
        packages.append(PackageRecord(
            name=parts["name"],
            architecture=parts["arch"],
            version=parts["version"],
            status=PackageStatus.AVAILABLE,
            source_manager=manager,
        ))
    return packages


def parse_search_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> Dict[str, PackageRecord]:
    """Only the exact-match section is used by default; every section when ``exact_match`` is off."""
    options = options or DEFAULT_OPTIONS
    packages: Dict[str, PackageRecord] = {}
    for section in tokenize(text, Strategy.SECTIONS):
        if not section.title:
            continue
        if options.exact_match and not section.title.startswith(EXACT_SECTION):
            logger.debug("%s: skipping search section %r", manager, section.title)
            continue
        for line in section.lines:
            log_raw(manager, line, options.verbose)
            if " : " not in line:
                continue
            token = line.split(" : ", 1)[0].strip()
            parts = split_nevra(token)
            if parts is None:
                name, _, arch = token.rpartition(".")
                if not name or " " in token:
                    continue
                parts = {"name": name, "arch": arch, "version": ""}
            packages[parts["name"]] = PackageRecord(
                name=parts["name"],
                architecture=parts["arch"],
                version=parts["version"],
                candidate_version=parts["version"],
                source_manager=manager,
            )
    return packages


def parse_list_upgradable_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    options = options or DEFAULT_OPTIONS
    return _column_records(text, manager, options, PackageStatus.UPGRADABLE)


def parse_package_info_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    options = options or DEFAULT_OPTIONS
    packages: List[PackageRecord] = []
    status = PackageStatus.AVAILABLE
    for block in tokenize(text, Strategy.BLOCKS):
        for line in block:
            log_raw(manager, line, options.verbose)
            if line.strip() in PACKAGE_LIST_HEADERS:
                status = PACKAGE_LIST_HEADERS[line.strip()]
        fields = parse_key_values(block)
        name = fields.get("Name", "").strip()
        if not name:
            continue
        version = fields.get("Version", "")
        release = fields.get("Release", "")
        if version and release:
            version = f"{version}-{release}"
        packages.append(PackageRecord(
            name=name,
            architecture=fields.get("Architecture", ""),
            version=version,
            candidate_version=version,
            category=fields.get("Repository", "").lstrip("@"),
            status=status,
            source_manager=manager,
        ))
    return packages


def parse_status_output(text: str) -> Iterator[StatusTriple]:
    """Parse ``rpm -q --queryformat '%{NAME} %{VERSION}-%{RELEASE}\\n'``."""
    for line in tokenize(text):
        m = RPM_NOT_INSTALLED_RE.match(line)
        if m:
            yield StatusTriple(m.group("name"), PackageStatus.UNKNOWN)
            continue
        parts = line.split()
        if len(parts) != 2:
            continue
        yield StatusTriple(parts[0], PackageStatus.INSTALLED, parts[1])


def rpm_not_found(returncode: int, output: str) -> bool:
    # rpm -q exits with the number of packages it could not find
    return "is not installed" in output


class DnfBackend(Backend):
    name = MANAGER
    binary = "dnf"

    def _flags(self, options: Options) -> List[str]:
        flags: List[str] = []
        if options.dry_run:
            flags.append(ARGS_TEST_TRANSACTION)
        if options.assume_yes and not options.interactive:
            flags.append(ARGS_ASSUME_YES)
        return flags

    def install(self, packages: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        args = ["dnf", "install", *self._flags(options), *packages]
        return self._execute(args, "install", options, parse_install_output)

    def remove(self, packages: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        args = ["dnf", "remove", *self._flags(options), *packages]
        return self._execute(args, "remove", options, parse_remove_output)

    def search(self, keywords: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        result = self._run(["dnf", "search", ARGS_SHOW_DUPLICATES, *keywords], "search", options)
        pending = parse_search_output(result.output, manager=self.name, options=options)
        return resolve_status(
            pending,
            lambda names: self._query_status(names, options),
            parse_status_output,
            self.name,
        )

    def _query_status(self, names: Sequence[str], options: Options) -> CommandResult:
        args = ["rpm", "-q", "--queryformat", "%{NAME} %{VERSION}-%{RELEASE}\\n", *names]
        return self._run(args, "status query", options, combine_stderr=True, not_found=rpm_not_found)

    def list_installed(self, options: Optional[Options] = None) -> List[PackageRecord]:
        return self._query(["dnf", "list", "installed"], "list installed", options, parse_list_installed_output)

    def list_upgradable(self, options: Optional[Options] = None) -> List[PackageRecord]:
        return self._query(["dnf", "list", "--upgrades"], "list upgradable", options, parse_list_upgradable_output)

    def upgrade(self, packages: Sequence[str] = (), options: Optional[Options] = None) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        args = ["dnf", "upgrade", *self._flags(options), *packages]
        return self._execute(args, "upgrade", options, parse_install_output)

    def refresh(self, options: Optional[Options] = None) -> None:
        options = options or DEFAULT_OPTIONS
        if options.interactive:
            self.runner.run_interactive(["dnf", "makecache"], "refresh", env=self.env)
            return
        result = self._run(["dnf", "makecache"], "refresh", options)
        for line in tokenize(result.output):
            log_raw(self.name, line, options.verbose)

    def detail(self, package: str, options: Optional[Options] = None) -> List[PackageRecord]:
        return self._query(
            ["dnf", "info", package],
            "info",
            options,
            parse_package_info_output,
            combine_stderr=True,
            not_found=lambda returncode, output: "No matching Packages" in output,
        )
