from __future__ import annotations

import re
from typing import Dict, Iterator, List, Optional, Sequence

from .base import Backend
from .models import DEFAULT_OPTIONS, Options, PackageRecord, PackageStatus, StatusTriple
from .reconciler import resolve_status
from .runner import CommandResult
from .tokenizer import log_raw, parse_key_values, tokenize

MANAGER = "flatpak"

ARGS_ASSUME_YES = "-y"
ARGS_NONINTERACTIVE = "--noninteractive"
ARGS_NO_DEPLOY = "--no-deploy"

INSTALLED_COLUMNS = "--columns=application,version,arch,branch"
SEARCH_COLUMNS = "--columns=application,version,branch,remotes"
STATUS_COLUMNS = "--columns=application,version"

# "Installing: org.gnome.Calculator/x86_64/stable from flathub"
REF = r"(?:(?:app|runtime)/)?(?P<name>[^/\s]+)/(?P<arch>[^/\s]*)/(?P<branch>[^/\s]+)"
INSTALLING_RE = re.compile(r"^\s*(?:Installing|Updating):?\s+" + REF)
UNINSTALLING_RE = re.compile(r"^\s*Uninstalling:?\s+" + REF)
HEADER_PREFIX = "Application ID"


def _columns(text: str, manager: str, options: Options) -> Iterator[List[str]]:
    """Tab-separated ``--columns`` rows, padded so missing trailing columns read as empty."""
    for line in tokenize(text):
        log_raw(manager, line, options.verbose)
        if not line.strip() or line.startswith(HEADER_PREFIX):
            continue
        parts = [p.strip() for p in line.split("\t")]
        if not parts[0] or " " in parts[0]:
            continue
        yield parts + [""] * (4 - len(parts))


def _ref_records(
    text: str,
    manager: str,
    options: Options,
    pattern: "re.Pattern[str]",
    status: PackageStatus,
) -> List[PackageRecord]:
    packages: List[PackageRecord] = []
    for line in tokenize(text):
        log_raw(manager, line, options.verbose)
        m = pattern.match(line)
        if not m:
            continue
        packages.append(PackageRecord(
            name=m.group("name"),
            architecture=m.group("arch"),
            category=m.group("branch"),
            status=status,
            source_manager=manager,
        ))
    return packages


def parse_install_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    return _ref_records(text, manager, options or DEFAULT_OPTIONS, INSTALLING_RE, PackageStatus.INSTALLED)


def parse_remove_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    return _ref_records(text, manager, options or DEFAULT_OPTIONS, UNINSTALLING_RE, PackageStatus.AVAILABLE)


def parse_search_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> Dict[str, PackageRecord]:
    options = options or DEFAULT_OPTIONS
    packages: Dict[str, PackageRecord] = {}
    for app_id, version, branch, _remotes in (row[:4] for row in _columns(text, manager, options)):
        packages[app_id] = PackageRecord(
            name=app_id,
            version=version,
            candidate_version=version,
            category=branch,
            source_manager=manager,
        )
    return packages


def _listing(text: str, manager: str, options: Options, status: PackageStatus) -> List[PackageRecord]:
    packages: List[PackageRecord] = []
    for app_id, version, arch, branch in (row[:4] for row in _columns(text, manager, options)):
        packages.append(PackageRecord(
            name=app_id,
            architecture=arch,
            version="" if status == PackageStatus.UPGRADABLE else version,
            candidate_version=version,
            category=branch,
            status=status,
            source_manager=manager,
        ))
    return packages


def parse_list_installed_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    return _listing(text, manager, options or DEFAULT_OPTIONS, PackageStatus.INSTALLED)


def parse_list_upgradable_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    return _listing(text, manager, options or DEFAULT_OPTIONS, PackageStatus.UPGRADABLE)


def parse_package_info_output(text: str, manager: str = MANAGER, options: Optional[Options] = None) -> List[PackageRecord]:
    """Parse ``flatpak info``; the keys are right-aligned, so indentation means nothing."""
    options = options or DEFAULT_OPTIONS
    lines = list(tokenize(text))
    for line in lines:
        log_raw(manager, line, options.verbose)
    fields = parse_key_values(lines, indent_continues=False)
    name = fields.get("ID", "").strip()
    if not name:
        return []
    version = fields.get("Version", "")
    return [PackageRecord(
        name=name,
        architecture=fields.get("Arch", ""),
        version=version,
        candidate_version=version,
        category=fields.get("Branch", ""),
        status=PackageStatus.INSTALLED,
        source_manager=manager,
    )]


def parse_status_output(text: str) -> Iterator[StatusTriple]:
    for row in _columns(text, MANAGER, DEFAULT_OPTIONS):
        yield StatusTriple(row[0], PackageStatus.INSTALLED, row[1])


class FlatpakBackend(Backend):
    name = MANAGER
    binary = "flatpak"

    def _flags(self, options: Options) -> List[str]:
        if options.interactive:
            return []
        flags = [ARGS_NONINTERACTIVE]
        if options.assume_yes:
            flags.append(ARGS_ASSUME_YES)
        return flags

    def install(self, packages: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        args = ["flatpak", "install", *self._flags(options)]
        if options.dry_run:
            args.append(ARGS_NO_DEPLOY)
        return self._execute([*args, *packages], "install", options, parse_install_output)

    def remove(self, packages: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        args = ["flatpak", "uninstall", *self._flags(options), *packages]
        return self._execute(args, "remove", options, parse_remove_output)

    def search(self, keywords: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        result = self._run(["flatpak", "search", SEARCH_COLUMNS, *keywords], "search", options)
        pending = parse_search_output(result.output, manager=self.name, options=options)
        return resolve_status(
            pending,
            lambda names: self._query_status(options),
            parse_status_output,
            self.name,
        )

    def _query_status(self, options: Options) -> CommandResult:
        # flatpak list takes no names; one listing of apps and runtimes answers for all of them
        return self._run(["flatpak", "list", STATUS_COLUMNS], "status query", options)

    def list_installed(self, options: Optional[Options] = None) -> List[PackageRecord]:
        args = ["flatpak", "list", "--app", INSTALLED_COLUMNS]
        return self._query(args, "list installed", options, parse_list_installed_output)

    def list_upgradable(self, options: Optional[Options] = None) -> List[PackageRecord]:
        args = ["flatpak", "remote-ls", "--updates", "--app", INSTALLED_COLUMNS]
        return self._query(args, "list upgradable", options, parse_list_upgradable_output)

    def upgrade(self, packages: Sequence[str] = (), options: Optional[Options] = None) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        args = ["flatpak", "update", *self._flags(options)]
        if options.dry_run:
            args.append(ARGS_NO_DEPLOY)
        return self._execute([*args, *packages], "upgrade", options, parse_install_output)

    def refresh(self, options: Optional[Options] = None) -> None:
        options = options or DEFAULT_OPTIONS
        args = ["flatpak", "update", "--appstream"]
        if options.interactive:
            self.runner.run_interactive(args, "refresh", env=self.env)
            return
        result = self._run(args, "refresh", options)
        for line in tokenize(result.output):
            log_raw(self.name, line, options.verbose)

    def detail(self, package: str, options: Optional[Options] = None) -> List[PackageRecord]:
        return self._query(
            ["flatpak", "info", package],
            "info",
            options,
            parse_package_info_output,
            combine_stderr=True,
            not_found=lambda returncode, output: "not installed" in output,
        )
