"""Distribution of a diff across review agents."""

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from multi_reviewer.models.diff import (
    ChangedFile,
    DiffResult,
    DiffStats,
    ReviewMode,
    compute_stats,
)

logger = logging.getLogger(__name__)

# Either side may be C-quoted by git when the path has special characters
_SECTION_HEADER = re.compile(
    r'^diff --git (?:"a/(?P<qold>(?:[^"\\]|\\.)+)"|a/(?P<old>.+?)) '
    r'(?:"b/(?P<qnew>(?:[^"\\]|\\.)+)"|b/(?P<new>.+))$',
    re.MULTILINE,
)

_OCTAL_ESCAPE = re.compile(r"[0-7]{3}")

_C_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    '"': '"',
    "\\": "\\",
}


@dataclass(frozen=True)
class DiffSlice:
    """The part of the diff one agent reviews."""

    files: tuple[ChangedFile, ...]
    diff_text: str
    stats: DiffStats


def split_files(files: Sequence[ChangedFile], n: int) -> list[tuple[ChangedFile, ...]]:
    """Deal files round-robin into exactly ``n`` buckets.

    File ``i`` goes to bucket ``i % n``, so each bucket keeps the original
    relative order. Buckets beyond the file count are empty.
    """
    if n <= 0:
        return []
    return [tuple(files[i::n]) for i in range(n)]


def unquote_path(path: str) -> str:
    """Undo git's C-style path quoting.

    Accepts the path with or without its surrounding double quotes. Octal
    escapes are raw bytes, so ``caf\\303\\251.py`` decodes as UTF-8 to
    ``café.py``. Unquoted paths are returned unchanged.
    """
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        path = path[1:-1]
    if "\\" not in path:
        return path

    buf = bytearray()
    i = 0
    while i < len(path):
        ch = path[i]
        if ch == "\\" and i + 1 < len(path):
            octal = _OCTAL_ESCAPE.match(path, i + 1)
            if octal:
                buf.append(int(octal.group(), 8))
                i = octal.end()
                continue
            nxt = path[i + 1]
            buf.extend(_C_ESCAPES.get(nxt, nxt).encode())
            i += 2
            continue
        buf.extend(ch.encode())
        i += 1
    return buf.decode(errors="replace")


def _header_paths(match: re.Match) -> tuple[str, str]:
    old = match.group("old")
    if old is None:
        old = unquote_path(match.group("qold"))
    new = match.group("new")
    if new is None:
        new = unquote_path(match.group("qnew"))
    return old, new


def filter_diff(diff_text: str, files: Iterable[ChangedFile]) -> str:
    """Keep only the ``diff --git`` sections that touch the given files.

    Quoted header paths are unquoted before matching. Text without section
    headers cannot be filtered and is returned whole.
    """
    headers = list(_SECTION_HEADER.finditer(diff_text))
    if not headers:
        return diff_text

    wanted: set[str] = set()
    for f in files:
        wanted.add(f.path)
        if f.old_path:
            wanted.add(f.old_path)

    kept = []
    for i, match in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(diff_text)
        old, new = _header_paths(match)
        if new in wanted or old in wanted:
            kept.append(diff_text[match.start() : end])
    return "".join(kept)


def partition(diff: DiffResult, mode: ReviewMode, agent_count: int) -> list[DiffSlice]:
    """Produce one DiffSlice per agent.

    In ALL mode every agent gets the full file list, full diff text and the
    precomputed stats. In SPLIT mode files are dealt round-robin and each
    slice carries its own stats and filtered diff text.

    Args:
        diff: Output of the diff collaborator
        mode: Distribution policy
        agent_count: Number of configured agents

    Returns:
        Exactly ``agent_count`` slices, in agent order
    """
    if mode is ReviewMode.SPLIT:
        buckets = split_files(diff.files, agent_count)
        slices = [
            DiffSlice(
                files=bucket,
                diff_text=filter_diff(diff.full_diff, bucket) if bucket else "",
                stats=compute_stats(bucket),
            )
            for bucket in buckets
        ]
        logger.debug(
            f"Split {len(diff.files)} files across {agent_count} agents: "
            f"{[len(s.files) for s in slices]}"
        )
        return slices

    shared = DiffSlice(files=diff.files, diff_text=diff.full_diff, stats=diff.stats)
    return [shared] * agent_count
