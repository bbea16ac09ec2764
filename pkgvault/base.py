from __future__ import annotations

from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Callable, List, Mapping, Optional, Sequence

from .errors import PackageNotFoundError
from .models import DEFAULT_OPTIONS, Options, PackageRecord
from .runner import CommandResult, CommandRunner, NotFoundPredicate

OutputParser = Callable[..., List[PackageRecord]]


class Backend(ABC):
    """One package manager behind the common record model."""

    name: str = ""
    binary: str = ""
    env: Mapping[str, str] = MappingProxyType({})

    def __init__(self, runner: Optional[CommandRunner] = None) -> None:
        self.runner = runner or CommandRunner(self.name)

    def is_available(self) -> bool:
        return self.runner.is_available(self.binary)

    def _run(
        self,
        args: Sequence[str],
        operation: str,
        options: Options,
        combine_stderr: bool = False,
        not_found: Optional[NotFoundPredicate] = None,
    ) -> CommandResult:
        return self.runner.run(
            args,
            operation,
            env=self.env,
            combine_stderr=combine_stderr,
            not_found=not_found,
            timeout=options.timeout,
        )

    def _execute(
        self,
        args: Sequence[str],
        operation: str,
        options: Optional[Options],
        parser: OutputParser,
    ) -> List[PackageRecord]:
        """Run a state-changing command, attached to the terminal when interactive."""
        options = options or DEFAULT_OPTIONS
        if options.interactive:
            self.runner.run_interactive(args, operation, env=self.env)
            return []
        result = self._run(args, operation, options)
        return parser(result.output, manager=self.name, options=options)

    def _query(
        self,
        args: Sequence[str],
        operation: str,
        options: Optional[Options],
        parser: OutputParser,
        combine_stderr: bool = False,
        not_found: Optional[NotFoundPredicate] = None,
    ) -> List[PackageRecord]:
        options = options or DEFAULT_OPTIONS
        result = self._run(args, operation, options, combine_stderr=combine_stderr, not_found=not_found)
        return parser(result.output, manager=self.name, options=options)

    @abstractmethod
    def install(self, packages: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        pass

    @abstractmethod
    def remove(self, packages: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        pass

    @abstractmethod
    def search(self, keywords: Sequence[str], options: Optional[Options] = None) -> List[PackageRecord]:
        pass

    @abstractmethod
    def list_installed(self, options: Optional[Options] = None) -> List[PackageRecord]:
        pass

    @abstractmethod
    def list_upgradable(self, options: Optional[Options] = None) -> List[PackageRecord]:
        pass

    @abstractmethod
    def upgrade(self, packages: Sequence[str] = (), options: Optional[Options] = None) -> List[PackageRecord]:
        """Upgrade ``packages``, or everything when none are given."""

    @abstractmethod
    def refresh(self, options: Optional[Options] = None) -> None:
        """Update the backend's package metadata."""

    @abstractmethod
    def detail(self, package: str, options: Optional[Options] = None) -> List[PackageRecord]:
        """Every record the backend's detail command prints for ``package``."""

    def info(self, package: str, options: Optional[Options] = None) -> PackageRecord:
        records = self.detail(package, options)
        if not records:
            raise PackageNotFoundError(self.name, package)
        return records[0]

