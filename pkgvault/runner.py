from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Sequence

from .errors import TransportError

logger = logging.getLogger(__name__)

# Decides whether a non-zero exit only means "some requested names were not found".
NotFoundPredicate = Callable[[int, str], bool]

BASE_ENV: Mapping[str, str] = MappingProxyType({"LC_ALL": "C"})


class CommandStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not-found"


@dataclass(frozen=True)
class CommandResult:
    status: CommandStatus
    output: str
    returncode: int = 0


class CommandRunner:
    def __init__(self, manager: str) -> None:
        self.manager = manager

    def is_available(self, binary: str) -> bool:
        return shutil.which(binary) is not None

    def _env(self, env: Optional[Mapping[str, str]]) -> Dict[str, str]:
        merged = dict(os.environ)
        merged.update(BASE_ENV)
        if env:
            merged.update(env)
        return merged

    def run(
        self,
        args: Sequence[str],
        operation: str,
        env: Optional[Mapping[str, str]] = None,
        combine_stderr: bool = False,
        not_found: Optional[NotFoundPredicate] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        logger.debug("%s %s: running %s", self.manager, operation, " ".join(args))
        try:
            proc = subprocess.run(
                list(args),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if combine_stderr else subprocess.PIPE,
                text=True,
                errors="replace",
                env=self._env(env),
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError:
            raise TransportError(self.manager, operation, args, reason=f"{args[0]} not found")
        except subprocess.TimeoutExpired:
            raise TransportError(self.manager, operation, args, reason=f"timed out after {timeout}s")
        except OSError as e:
            raise TransportError(self.manager, operation, args, reason=str(e))

        output = proc.stdout or ""
        if proc.returncode == 0:
            return CommandResult(CommandStatus.OK, output, 0)
        if not_found is not None and not_found(proc.returncode, output):
            return CommandResult(CommandStatus.NOT_FOUND, output, proc.returncode)
        stderr = proc.stderr if not combine_stderr else output
        raise TransportError(self.manager, operation, args, proc.returncode, (stderr or "").strip())

    def run_interactive(
        self,
        args: Sequence[str],
        operation: str,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        logger.debug("%s %s: running %s (interactive)", self.manager, operation, " ".join(args))
        try:
            proc = subprocess.run(list(args), env=self._env(env), check=False)
        except FileNotFoundError:
            raise TransportError(self.manager, operation, args, reason=f"{args[0]} not found")
        except OSError as e:
            raise TransportError(self.manager, operation, args, reason=str(e))
        if proc.returncode != 0:
            raise TransportError(self.manager, operation, args, proc.returncode)
