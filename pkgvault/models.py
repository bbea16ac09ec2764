from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PackageStatus(str, Enum):
    INSTALLED = "installed"
    AVAILABLE = "available"
    UPGRADABLE = "upgradable"
    CONFIG_FILES = "config-files-only"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PackageRecord:
    name: str
    architecture: str = ""
    version: str = ""
    candidate_version: str = ""
    category: str = ""
    status: PackageStatus = PackageStatus.UNKNOWN
    source_manager: str = ""

    @property
    def label(self) -> str:
        if self.version:
            return f"{self.name} {self.version} [{self.status.value}]"
        return f"{self.name} [{self.status.value}]"


@dataclass(frozen=True)
class StatusTriple:
    """One row of an authoritative status query."""

    name: str
    status: PackageStatus
    version: str = ""


@dataclass(frozen=True)
class Options:
    verbose: bool = False
    # dnf search: only the "Name Exactly Matched" section unless turned off
    exact_match: bool = True
    dry_run: bool = False
    interactive: bool = False
    assume_yes: bool = True
    timeout: Optional[float] = None


DEFAULT_OPTIONS = Options()
