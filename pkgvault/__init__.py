from __future__ import annotations

from typing import Dict, List, Optional, Type

from .apt_backend import AptBackend
from .base import Backend
from .dnf_backend import DnfBackend
from .errors import (
    MalformedOutputError,
    PackageManagerError,
    PackageNotFoundError,
    TransportError,
    UnknownBackendError,
)
from .flatpak_backend import FlatpakBackend
from .models import Options, PackageRecord, PackageStatus
from .runner import CommandResult, CommandRunner, CommandStatus
from .snap_backend import SnapBackend

__version__ = "0.1.0"

BACKENDS: Dict[str, Type[Backend]] = {
    AptBackend.name: AptBackend,
    DnfBackend.name: DnfBackend,
    SnapBackend.name: SnapBackend,
    FlatpakBackend.name: FlatpakBackend,
}


def get_backend(name: str, runner: Optional[CommandRunner] = None) -> Backend:
    try:
        cls = BACKENDS[name]
    except KeyError:
        raise UnknownBackendError(name) from None
    return cls(runner)


def available_backends() -> List[Backend]:
    return [backend for backend in (cls() for cls in BACKENDS.values()) if backend.is_available()]


__all__ = [
    "AptBackend",
    "Backend",
    "BACKENDS",
    "CommandResult",
    "CommandRunner",
    "CommandStatus",
    "DnfBackend",
    "FlatpakBackend",
    "MalformedOutputError",
    "Options",
    "PackageManagerError",
    "PackageNotFoundError",
    "PackageRecord",
    "PackageStatus",
    "SnapBackend",
    "TransportError",
    "UnknownBackendError",
    "available_backends",
    "get_backend",
]
