from __future__ import annotations

from typing import Optional, Sequence


class PackageManagerError(RuntimeError):
    pass


class TransportError(PackageManagerError):
    """A package-manager process could not be run or failed."""

    def __init__(
        self,
        manager: str,
        operation: str,
        command: Sequence[str],
        returncode: Optional[int] = None,
        output: str = "",
        reason: str = "",
    ) -> None:
        self.manager = manager
        self.operation = operation
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        detail = reason or f"exit code {returncode}"
        message = f"{manager} {operation} failed ({detail}): {' '.join(self.command)}"
        tail = output.strip()
        if tail:
            message = f"{message}. {tail}"
        super().__init__(message)


class MalformedOutputError(PackageManagerError):
    def __init__(self, manager: str, stage: str, output: str = "") -> None:
        self.manager = manager
        self.stage = stage
        self.output = output
        super().__init__(f"{manager}: could not parse output of {stage}")


class PackageNotFoundError(PackageManagerError):
    def __init__(self, manager: str, package: str) -> None:
        self.manager = manager
        self.package = package
        super().__init__(f"{manager}: no information found for package '{package}'")


class UnknownBackendError(PackageManagerError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"unknown package manager backend '{name}'")
