"""Detection of hard-coded API URL rewrites in unified diff patches.

A removed line and a later added line that both carry a URL literal, with
different URLs, form one change. This catches client-side URL edits that
the graph alone cannot see when the target lives in another repository.
"""

from __future__ import annotations

import logging
import re

from shadowgraph.models.report import ApiUrlChange, ChangedFile
from shadowgraph.models.types import UrlChangeType

logger = logging.getLogger(__name__)

# Tried in order; the first pattern with any match wins for a line.
_URL_PATTERNS = (
    re.compile(r"[\"'`](/?api/[^\"'`]*?)[\"'`]", re.IGNORECASE),
    re.compile(r"[\"'`](/[A-Za-z0-9_\-]+/[A-Za-z0-9_\-/{}]*?)[\"'`]"),
    re.compile(
        r"(?:restTemplate|webClient|httpClient|feignClient|restClient)"
        r"\.(?:get|post|put|delete|patch|exchange|retrieve).*?[\"'](/[^\"']*?)[\"']",
        re.IGNORECASE,
    ),
    re.compile(
        r"@(?:Get|Post|Put|Delete|Patch|Request)Mapping\([\"'](/[^\"']*?)[\"']",
        re.IGNORECASE,
    ),
)


def detect_api_url_changes(changed_files: list[ChangedFile]) -> list[ApiUrlChange]:
    """Find URL literals rewritten across all patched source files."""
    changes: list[ApiUrlChange] = []
    for changed in changed_files:
        if not changed.patch or not changed.is_source:
            continue
        changes.extend(_analyze_patch(changed))
    if changes:
        logger.info("api_url_changes_detected count=%d", len(changes))
    return changes


def _analyze_patch(changed: ChangedFile) -> list[ApiUrlChange]:
    changes: list[ApiUrlChange] = []
    removed_url: str | None = None
    added_url: str | None = None
    simple_name = changed.class_name.rsplit(".", 1)[-1]

    for line_number, line in enumerate(changed.patch.splitlines(), start=1):
        if line.startswith("-") and not line.startswith("---"):
            urls = extract_urls(line[1:])
            if urls:
                removed_url = urls[0]
        elif line.startswith("+") and not line.startswith("+++"):
            urls = extract_urls(line[1:])
            if urls:
                added_url = urls[0]

        if removed_url is not None and added_url is not None:
            if removed_url != added_url:
                changes.append(
                    ApiUrlChange(
                        file=changed.filename or changed.class_name,
                        class_name=simple_name,
                        old_url=removed_url,
                        new_url=added_url,
                        line_number=line_number,
                        change_type=classify_url_change(removed_url, added_url),
                    )
                )
            removed_url = added_url = None
    return changes


def extract_urls(line: str) -> list[str]:
    """URL-like string literals on one line of code."""
    for pattern in _URL_PATTERNS:
        urls = [m.group(1) for m in pattern.finditer(line)]
        if urls:
            return urls
    return []


def classify_url_change(old_url: str, new_url: str) -> UrlChangeType:
    """Classify a URL rewrite by how many path segments moved."""
    if "/" not in old_url or "/" not in new_url:
        return UrlChangeType.COMPLETE_REWRITE

    old_segments = old_url.split("/")
    new_segments = new_url.split("/")
    if len(old_segments) != len(new_segments):
        return UrlChangeType.PATH_STRUCTURE_CHANGE

    differing = sum(1 for a, b in zip(old_segments, new_segments) if a != b)
    if differing == 0:
        return UrlChangeType.MINOR_CHANGE
    if differing == 1 and differing < len(old_segments) - 1:
        return UrlChangeType.PATH_SEGMENT_CHANGE
    return UrlChangeType.PATH_STRUCTURE_CHANGE
