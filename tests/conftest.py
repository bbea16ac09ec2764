from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pytest

from pkgvault.errors import TransportError
from pkgvault.runner import CommandResult, CommandRunner, CommandStatus, NotFoundPredicate

# output, or (returncode, output), or an exception to raise
Response = Union[str, Tuple[int, str], Exception]


class FakeRunner(CommandRunner):
    """Replays canned output per operation and records every invocation."""

    def __init__(self, manager: str, responses: Optional[Dict[str, Response]] = None) -> None:
        super().__init__(manager)
        self.responses: Dict[str, Response] = dict(responses or {})
        self.calls: List[Tuple[str, List[str]]] = []
        self.interactive_calls: List[Tuple[str, List[str]]] = []
        self.available = True

    def is_available(self, binary: str) -> bool:
        return self.available

    def run(
        self,
        args: Sequence[str],
        operation: str,
        env: Optional[Mapping[str, str]] = None,
        combine_stderr: bool = False,
        not_found: Optional[NotFoundPredicate] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        self.calls.append((operation, list(args)))
        response = self.responses.get(operation, "")
        if isinstance(response, Exception):
            raise response
        if isinstance(response, tuple):
            returncode, output = response
        else:
            returncode, output = 0, response
        if returncode == 0:
            return CommandResult(CommandStatus.OK, output, 0)
        if not_found is not None and not_found(returncode, output):
            return CommandResult(CommandStatus.NOT_FOUND, output, returncode)
        raise TransportError(self.manager, operation, args, returncode, output)

    def run_interactive(self, args: Sequence[str], operation: str, env: Optional[Mapping[str, str]] = None) -> None:
        self.interactive_calls.append((operation, list(args)))

    def args_for(self, operation: str) -> List[str]:
        for op, args in self.calls:
            if op == operation:
                return args
        raise AssertionError(f"{operation} was not run; calls: {self.calls}")


@pytest.fixture
def fake_runner():
    def make(manager: str, **responses: Response) -> FakeRunner:
        return FakeRunner(manager, {k.replace("_", " "): v for k, v in responses.items()})

    return make
