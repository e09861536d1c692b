"""Resolve findings to ``path:line`` anchors and trim them to a context budget."""

from __future__ import annotations

import logging
import re
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .types import MemoryResult, SnippetAnchor

logger = logging.getLogger(__name__)

DEFAULT_MAX_SNIPPET_CHARS = 180

ReadFile = Callable[[str], str]

_NON_WORD = re.compile(r"[^a-z0-9_]+")
_WHITESPACE = re.compile(r"\s+")


def _default_read_file(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def normalize_for_search(value: str) -> str:
    return _NON_WORD.sub(" ", value.lower()).strip()


def tokenize_finding_text(value: str) -> List[str]:
    """Distinct tokens of three or more characters, in first-seen order."""
    seen = set()
    tokens: List[str] = []
    for token in normalize_for_search(value).split():
        if len(token) < 3 or token in seen:
            continue
        seen.add(token)
        tokens.append(token)
    return tokens


def sanitize_snippet(line: str, max_chars: int = DEFAULT_MAX_SNIPPET_CHARS) -> str:
    normalized = _WHITESPACE.sub(" ", line.replace("`", "'")).strip()
    if len(normalized) <= max_chars:
        return normalized
    return normalized[:max_chars].rstrip() + "..."


def find_best_line_number(lines: Sequence[str], finding_text: str) -> int | None:
    """1-based number of the line that best matches the finding text.

    A line needs at least two token hits or one adjacent-token phrase hit.
    Phrases count double; the earliest line wins ties.
    """
    tokens = tokenize_finding_text(finding_text)
    if not tokens:
        return None
    phrases = [f"{a} {b}" for a, b in zip(tokens, tokens[1:])]

    best_score = 0
    best_line: int | None = None
    for index, raw_line in enumerate(lines):
        normalized = normalize_for_search(raw_line)
        if not normalized:
            continue

        token_hits = sum(1 for token in tokens if token in normalized)
        phrase_hits = sum(1 for phrase in phrases if phrase in normalized)
        if token_hits < 2 and phrase_hits == 0:
            continue

        score = token_hits + phrase_hits * 2
        if score > best_score:
            best_score = score
            best_line = index + 1

    return best_line


def _path_only_anchor(finding: MemoryResult) -> SnippetAnchor:
    path = finding.record.file_path
    return SnippetAnchor(path=path, anchor=path, distance=finding.distance)


def _resolve_in_workspace(workspace: Path, repo_path: str) -> Path | None:
    candidate = (workspace / repo_path).resolve()
    try:
        candidate.relative_to(workspace)
    except ValueError:
        return None
    return candidate


def build_snippet_anchors(
    workspace_dir: str | Path,
    findings: Sequence[MemoryResult],
    read_file: Optional[ReadFile] = None,
    max_snippet_chars: int = DEFAULT_MAX_SNIPPET_CHARS,
) -> List[SnippetAnchor]:
    """Build one anchor per finding, falling back to a path-only anchor.

    Never raises: unreadable files, paths outside the workspace and findings
    with no matching line all produce ``SnippetAnchor(path, anchor=path)``.
    """
    if not findings:
        return []

    reader = read_file or _default_read_file
    workspace = Path(workspace_dir).resolve()
    file_cache: Dict[str, Optional[List[str]]] = {}
    anchors: List[SnippetAnchor] = []

    for finding in findings:
        repo_path = finding.record.file_path
        try:
            if not repo_path:
                anchors.append(_path_only_anchor(finding))
                continue

            absolute = _resolve_in_workspace(workspace, repo_path)
            if absolute is None:
                logger.debug("Skipping snippet for path outside workspace: %s", repo_path)
                anchors.append(_path_only_anchor(finding))
                continue

            if repo_path not in file_cache:
                try:
                    file_cache[repo_path] = reader(str(absolute)).splitlines()
                except Exception as e:
                    logger.debug("Snippet read failed for %s: %s", repo_path, e)
                    file_cache[repo_path] = None

            lines = file_cache[repo_path]
            if not lines:
                anchors.append(_path_only_anchor(finding))
                continue

            line_number = find_best_line_number(lines, finding.record.finding_text)
            if line_number is None:
                anchors.append(_path_only_anchor(finding))
                continue

            snippet = sanitize_snippet(lines[line_number - 1], max_snippet_chars)
            anchors.append(
                SnippetAnchor(
                    path=repo_path,
                    anchor=f"{repo_path}:{line_number}",
                    distance=finding.distance,
                    line=line_number,
                    snippet=snippet or None,
                )
            )
        except Exception as e:
            logger.debug("Snippet anchoring failed for %s: %s", repo_path, e)
            anchors.append(_path_only_anchor(finding))

    return anchors


def anchor_char_weight(anchor: SnippetAnchor) -> int:
    return len(anchor.anchor) + (len(anchor.snippet) + 3 if anchor.snippet else 0)


def _relevance_key(anchor: SnippetAnchor):
    return (
        anchor.distance,
        anchor.path,
        anchor.line if anchor.line is not None else sys.maxsize,
        anchor.anchor,
        anchor.snippet or "",
    )


def trim_snippet_anchors_to_budget(
    anchors: Sequence[SnippetAnchor], max_chars: int, max_items: int
) -> List[SnippetAnchor]:
    """Keep the most relevant anchors that fit both caps, ascending by distance."""
    if not anchors or max_items <= 0 or max_chars <= 0:
        return []

    trimmed = sorted(anchors, key=_relevance_key)[:max_items]
    total = sum(anchor_char_weight(a) for a in trimmed)
    while trimmed and total > max_chars:
        total -= anchor_char_weight(trimmed.pop())
    return trimmed
