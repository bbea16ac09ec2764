"""Merge search results with the installed state reported by a low-level query.

Search commands know which packages exist and at which version, but not
reliably whether they are installed. Each backend therefore issues one
batched authoritative query over all search hits and this module folds its
answer into the search records.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Callable, Iterable, List, Mapping, Sequence

from .errors import MalformedOutputError
from .models import PackageRecord, PackageStatus, StatusTriple
from .runner import CommandResult, CommandStatus

logger = logging.getLogger(__name__)

StatusParser = Callable[[str], Iterable[StatusTriple]]
StatusQuery = Callable[[Sequence[str]], CommandResult]


def reconcile(
    pending: Mapping[str, PackageRecord],
    triples: Iterable[StatusTriple],
) -> List[PackageRecord]:
    remaining = dict(pending)
    result: List[PackageRecord] = []

    for triple in triples:
        record = remaining.pop(triple.name, None)
        if record is None:
            continue
        changes = {"status": triple.status}
        if triple.version:
            changes["version"] = triple.version
        result.append(dataclasses.replace(record, **changes))

    for name, record in remaining.items():
        logger.debug("%s: status query did not report %s", record.source_manager, name)
        result.append(dataclasses.replace(record, status=PackageStatus.UNKNOWN))

    return result


def resolve_status(
    pending: Mapping[str, PackageRecord],
    query: StatusQuery,
    parse_status: StatusParser,
    manager: str,
) -> List[PackageRecord]:
    """Run ``query`` once for every pending name and merge its answer.

    Transport failures raised by ``query`` propagate untouched. A successful
    query that prints something but yields no status rows raises
    MalformedOutputError; a not-found result may legitimately yield none.
    """
    if not pending:
        return []

    result = query(list(pending))
    triples = list(parse_status(result.output))
    if not triples and result.status == CommandStatus.OK and result.output.strip():
        raise MalformedOutputError(manager, f"{manager} status query", result.output)

    return reconcile(pending, triples)
