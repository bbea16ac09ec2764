from __future__ import annotations

import logging
import re
from typing import Dict, Iterator, List, Optional, Sequence

from .base import Backend
from .models import DEFAULT_OPTIONS, Options, PackageRecord, PackageStatus, StatusTriple
from .reconciler import resolve_status
from .runner import CommandResult
from .tokenizer import log_raw, parse_key_values, tokenize

logger = logging.getLogger(__name__)

MANAGER = "snap"

INSTALLED_RE = re.compile(
    r"^(?P<name>\S+)(?: \((?P<channel>[^)]+)\))? (?P<version>\S+) from .+ (?:installed|refreshed)\s*$"
)
REMOVED_RE = re.compile(r"^(?P<name>\S+) removed\b")
REVISION_RE = re.compile(r"^x?\d+$")
NO_TRACKING = ("-", "")


def _table_rows(text: str, manager: str, options: Options, min_columns: int) -> Iterator[List[str]]:
    """Rows of a ``snap`` table; the header and short rows are skipped."""
    for line in tokenize(text):
        log_raw(manager, line, options.verbose)
        parts = line.split()
        if len(parts) < min_columns:
            continue
        if parts[0] == "Name" and parts[1] == "Version":
            continue
        yield parts


def parse_install_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    """Parse ``snap install`` / ``snap refresh`` confirmation lines.

    ``hello 2.10 from Canonical✓ installed`` or
    ``hello (beta) 2.10 from Canonical✓ refreshed``.
    """
    options = options or DEFAULT_OPTIONS
    packages: List[PackageRecord] = []
    for line in tokenize(text):
        log_raw(manager, line, options.verbose)
        m = INSTALLED_RE.match(line.strip())
        if not m:
            continue
        version = m.group("version")
        packages.append(PackageRecord(
            name=m.group("name"),
            version=version,
            candidate_version=version,
            category=m.group("channel") or "",
            status=PackageStatus.INSTALLED,
            source_manager=manager,
        ))
    return packages


def parse_remove_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    options = options or DEFAULT_OPTIONS
    packages: List[PackageRecord] = []
    for line in tokenize(text):
        log_raw(manager, line, options.verbose)
        m = REMOVED_RE.match(line.strip())
        if not m:
            continue
        packages.append(PackageRecord(
            name=m.group("name"),
            status=PackageStatus.AVAILABLE,
            source_manager=manager,
        ))
    return packages


def parse_search_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> Dict[str, PackageRecord]:
    # Name  Version  Publisher  Notes  Summary
    options = options or DEFAULT_OPTIONS
    packages: Dict[str, PackageRecord] = {}
    for parts in _table_rows(text, manager, options, 3):
        name = parts[0]
        packages[name] = PackageRecord(
            name=name,
            version=parts[1],
            candidate_version=parts[1],
            source_manager=manager,
        )
    return packages


def parse_list_installed_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    # Name  Version  Rev  Tracking  Publisher  Notes
    options = options or DEFAULT_OPTIONS
    packages: List[PackageRecord] = []
    for parts in _table_rows(text, manager, options, 4):
        if not REVISION_RE.match(parts[2]):
            continue
        tracking = parts[3]
        packages.append(PackageRecord(
            name=parts[0],
            version=parts[1],
            candidate_version=parts[1],
            category="" if tracking in NO_TRACKING else tracking,
            status=PackageStatus.INSTALLED,
            source_manager=manager,
        ))
    return packages


def parse_list_upgradable_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    # Name  Version  Rev  Size  Publisher  Notes
    options = options or DEFAULT_OPTIONS
    packages: List[PackageRecord] = []
    for parts in _table_rows(text, manager, options, 4):
        if not REVISION_RE.match(parts[2]):
            continue
        packages.append(PackageRecord(
            name=parts[0],
            candidate_version=parts[1],
            status=PackageStatus.UPGRADABLE,
            source_manager=manager,
        ))
    return packages


def _channel_versions(channels: str) -> Dict[str, str]:
    versions: Dict[str, str] = {}
    for line in channels.splitlines():
        channel, sep, rest = line.partition(":")
        tokens = rest.split()
        if not sep or not tokens or tokens[0] in ("--", "^", "↑"):
            continue
        versions[channel.strip()] = tokens[0]
    return versions


def parse_package_info_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    """Parse ``snap info``; ``installed`` is only present for installed snaps."""
    options = options or DEFAULT_OPTIONS
    lines = list(tokenize(text))
    for line in lines:
        log_raw(manager, line, options.verbose)
    fields = parse_key_values(lines)
    name = fields.get("name", "").strip()
    if not name:
        return []

    tracking = fields.get("tracking", "")
    channels = _channel_versions(fields.get("channels", ""))
    candidate = channels.get(tracking or "latest/stable", "")
    installed = fields.get("installed", "").split()
    if installed:
        version, status = installed[0], PackageStatus.INSTALLED
    else:
        version, status = candidate, PackageStatus.AVAILABLE
    return [PackageRecord(
        name=name,
        version=version,
        candidate_version=candidate or version,
        category=tracking,
        status=status,
        source_manager=manager,
    )]


def parse_status_output(text: str) -> Iterator[StatusTriple]:
    """``snap list <names>`` only prints installed snaps."""
    for parts in _table_rows(text, MANAGER, DEFAULT_OPTIONS, 2):
        if parts[0].startswith("error:"):
            continue
        yield StatusTriple(parts[0], PackageStatus.INSTALLED, parts[1])


def snap_not_found(returncode: int, output: str) -> bool:
    return returncode == 1 and "no matching snaps installed" in output


class SnapBackend(Backend):
    name = MANAGER
    binary = "snap"

    def install(self, packages: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        return self._execute(["snap", "install", *packages], "install", options, parse_install_output)

    def remove(self, packages: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        return self._execute(["snap", "remove", *packages], "remove", options, parse_remove_output)

    def search(self, keywords: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        result = self._run(
            ["snap", "find", *keywords],
            "search",
            options,
            not_found=lambda returncode, output: returncode == 1 and not output.strip(),
        )
        pending = parse_search_output(result.output, manager=self.name, options=options)
        return resolve_status(
            pending,
            lambda names: self._query_status(names, options),
            parse_status_output,
            self.name,
        )

    def _query_status(self, names: Sequence[str], options: Options) -> CommandResult:
        return self._run(["snap", "list", *names], "status query", options, combine_stderr=True, not_found=snap_not_found)

    def list_installed(self, options: Optional[Options] = None) -> List[PackageRecord]:
        return self._query(["snap", "list"], "list installed", options, parse_list_installed_output)

    def list_upgradable(self, options: Optional[Options] = None) -> List[PackageRecord]:
        return self._query(["snap", "refresh", "--list"], "list upgradable", options, parse_list_upgradable_output)

    def upgrade(self, packages: Sequence[str] = (), options: Optional[Options] = None) -> List[PackageRecord]:
        return self._execute(["snap", "refresh", *packages], "upgrade", options, parse_install_output)

    def refresh(self, options: Optional[Options] = None) -> None:
        # snapd keeps its store metadata current on its own
        logger.debug("snap: refresh is a no-op")

    def detail(self, package: str, options: Optional[Options] = None) -> List[PackageRecord]:
        return self._query(
            ["snap", "info", package],
            "info",
            options,
            parse_package_info_output,
            combine_stderr=True,
            not_found=lambda returncode, output: "no snap found" in output,
        )
