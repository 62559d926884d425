"""Application resolution for outbound call URLs.

Resolves the host part of an external call URL (a service DNS name, a
k8s service address, or a `${...}` base-url property) to a known
application of the project.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlparse


@dataclass
class ResolveResult:
    """Result of an application resolution attempt."""

    original: str
    host: str | None
    resolved: str | None  # application key
    confidence: float  # 0.0 to 1.0


class ApplicationResolver:
    """Resolves call URLs to application keys.

    Handles:
    - Exact host matches: "http://user-service:8080/api" -> "user-service"
    - K8s DNS patterns: "user-service.default.svc.cluster.local" -> "user-service"
    - Base-url properties: "${user-service.url}/api" -> "user-service"
    - Abbreviations: "user-svc" -> "user-service" (fuzzy)
    """

    K8S_SUFFIXES = [
        ".svc.cluster.local",
        ".cluster.local",
        ".svc",
    ]

    _PROPERTY_BASE = re.compile(r"^\$\{([^}:]+)(?::[^}]*)?\}")
    _PROPERTY_SUFFIXES = (".url", ".base-url", ".baseurl", ".host", ".uri", ".endpoint")

    def __init__(self, min_similarity: float = 0.6) -> None:
        """Initialize the resolver.

        Args:
            min_similarity: Minimum similarity score (0-1) for fuzzy matches.
        """
        self._min_similarity = min_similarity

    def resolve(self, url: str, application_keys: list[str]) -> ResolveResult:
        """Resolve a call URL to one of the given application keys.

        Args:
            url: Raw call URL as written in source.
            application_keys: Known application keys of the project.

        Returns:
            ResolveResult with the extracted host, resolved key and confidence.
        """
        host = self.extract_host(url)
        if not host or not application_keys:
            return ResolveResult(original=url, host=host, resolved=None, confidence=0.0)

        by_lower = {key.lower(): key for key in application_keys}
        if host in by_lower:
            return ResolveResult(original=url, host=host, resolved=by_lower[host], confidence=1.0)

        best_match: str | None = None
        best_score = 0.0
        for lowered in sorted(by_lower):
            score = self._similarity(host, lowered)
            if score > best_score and score >= self._min_similarity:
                best_score = score
                best_match = by_lower[lowered]

        return ResolveResult(
            original=url,
            host=host,
            resolved=best_match,
            confidence=best_score if best_match else 0.0,
        )

    def extract_host(self, url: str | None) -> str | None:
        """Service-name part of a URL, lower-cased, or None if there is none.

        Relative URLs ("/api/users") have no host.
        """
        if not url:
            return None
        raw = url.strip()

        placeholder = self._PROPERTY_BASE.match(raw)
        if placeholder:
            key = placeholder.group(1).strip().lower()
            for suffix in self._PROPERTY_SUFFIXES:
                if key.endswith(suffix):
                    key = key[: -len(suffix)]
                    break
            return key.rsplit(".", 1)[-1] or None

        if "://" in raw:
            host = urlparse(raw).hostname or ""
        elif raw.startswith("/"):
            return None
        else:
            host = raw.split("/")[0].split(":")[0]

        for suffix in self.K8S_SUFFIXES:
            if host.endswith(suffix):
                host = host[: -len(suffix)]
                break

        # "user-service.default" -> "user-service"
        host = host.split(".")[0]
        return host.lower().strip() or None

    def _similarity(self, a: str, b: str) -> float:
        """Similarity between two service names, 0.0 to 1.0.

        Prefix matches score at least 0.6, substrings by length ratio,
        shared hyphen/underscore parts by Jaccard overlap.
        """
        if a == b:
            return 1.0
        if not a or not b:
            return 0.0

        shorter = min(len(a), len(b))
        longer = max(len(a), len(b))
        if b.startswith(a) or a.startswith(b):
            return max(0.6, shorter / longer)
        if a in b or b in a:
            return shorter / longer

        a_parts = set(re.split(r"[-_]", a))
        b_parts = set(re.split(r"[-_]", b))
        common = a_parts & b_parts
        if common:
            return len(common) / len(a_parts | b_parts)

        # "usr-svc" vs "user-service": three-letter prefixes line up
        for ap in a_parts:
            for bp in b_parts:
                if len(ap) >= 3 and len(bp) >= 3 and (ap.startswith(bp[:3]) or bp.startswith(ap[:3])):
                    return 0.5
        return 0.0
