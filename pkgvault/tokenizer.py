from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Tuple, Union

logger = logging.getLogger(__name__)

# "=====" on its own, or "===== Name Matched: foo =====" as dnf prints it
BANNER_RE = re.compile(r"^\s*={3,}\s*(?P<title>.*?)\s*=*\s*$")


class Strategy(str, Enum):
    LINES = "lines"
    BLOCKS = "blocks"
    SECTIONS = "sections"


@dataclass
class Section:
    title: str
    lines: List[str] = field(default_factory=list)


def _strip_trailing_newline(text: str) -> str:
    if text.endswith("\r\n"):
        return text[:-2]
    if text.endswith("\n"):
        return text[:-1]
    return text


def iter_lines(text: str) -> Iterator[str]:
    if not text:
        return
    for line in _strip_trailing_newline(text).split("\n"):
        yield line.rstrip("\r")


def iter_blocks(text: str) -> Iterator[List[str]]:
    block: List[str] = []
    for line in iter_lines(text):
        if line.strip():
            block.append(line)
            continue
        if block:
            yield block
            block = []
    if block:
        yield block


def iter_sections(text: str) -> Iterator[Section]:
    current = Section(title="")
    for line in iter_lines(text):
        m = BANNER_RE.match(line)
        if m:
            if current.title or current.lines:
                yield current
            current = Section(title=m.group("title"))
            continue
        current.lines.append(line)
    if current.title or current.lines:
        yield current


def tokenize(text: str, strategy: Strategy = Strategy.LINES) -> Iterator[Union[str, List[str], Section]]:
    if strategy == Strategy.LINES:
        return iter_lines(text)
    if strategy == Strategy.BLOCKS:
        return iter_blocks(text)
    if strategy == Strategy.SECTIONS:
        return iter_sections(text)
    raise ValueError(f"unknown tokenizer strategy: {strategy!r}")


def split_arch(token: str) -> Tuple[str, str]:
    """Split ``name:arch`` into its parts; the arch is empty without a colon."""
    name, _, arch = token.partition(":")
    return name.strip(), arch.strip()


def parse_key_values(
    lines: Iterable[str],
    separator: str = ":",
    indent_continues: bool = True,
) -> Dict[str, str]:
    """Collect ``Key: value`` lines into an ordered mapping.

    Lines with an empty key (``      : more text``) continue the previous value
    and are appended to it on a new line. With ``indent_continues`` any line
    starting with whitespace is a continuation too (deb822, snap); flatpak
    right-aligns its keys, so it turns that off.
    """
    values: Dict[str, str] = {}
    last_key = None
    for line in lines:
        if not line.strip():
            continue
        key, sep, value = line.partition(separator)
        if sep and not key.strip():
            extra = value.strip()
        elif indent_continues and line[:1].isspace():
            extra = line.strip()
        elif sep:
            last_key = key.strip()
            values[last_key] = value.strip()
            continue
        else:
            continue
        if last_key is None:
            continue
        values[last_key] = f"{values[last_key]}\n{extra}" if values[last_key] else extra
    return values


def log_raw(manager: str, line: str, verbose: bool) -> None:
    if verbose:
        logger.info("%s: %s", manager, line)
