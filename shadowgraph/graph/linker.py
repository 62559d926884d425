"""Call linker for matching external calls to endpoints.

Links ExternalCall nodes to Endpoint nodes of the same project by
normalized path and HTTP method.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from shadowgraph.identity.canonical import (
    WILDCARD,
    WILDCARD_HTTP_METHODS,
    normalize_http_method,
    normalize_url,
)
from shadowgraph.models.graph import Node

MissReason = Literal["no_endpoints", "dynamic_url", "method_mismatch", "path_mismatch"]

MATCHED_REASON = "Matched endpoint in project graph"
SUFFIX_MATCHED_REASON = "Matched endpoint in project graph by path suffix"


@dataclass
class LinkResult:
    """Result of attempting to link a call to an endpoint.

    Either endpoint_id is set (success) or miss_reason (failure).
    """

    endpoint_id: str | None
    reason: str | None
    miss_reason: MissReason | None

    @property
    def linked(self) -> bool:
        """True if the call was linked to an endpoint."""
        return self.endpoint_id is not None

    @staticmethod
    def success(endpoint_id: str, reason: str = MATCHED_REASON) -> LinkResult:
        """Create successful link result."""
        return LinkResult(endpoint_id=endpoint_id, reason=reason, miss_reason=None)

    @staticmethod
    def failure(miss_reason: MissReason) -> LinkResult:
        """Create failed link result."""
        return LinkResult(endpoint_id=None, reason=None, miss_reason=miss_reason)


@dataclass(frozen=True)
class _EndpointRoute:
    canonical_id: str
    method: str
    path: str  # normalized


class EndpointLinker:
    """Links outbound calls to endpoints.

    COLLISION PRIORITY:
    1. Exact normalized path > template (/api/users/me > /api/users/{*})
    2. More literal segments > fewer
    3. Full path > path suffix (gateway or context prefixes)
    4. Lowest canonical id if still tied
    """

    def __init__(self, endpoints: list[Node]) -> None:
        self._routes = sorted(
            (
                _EndpointRoute(
                    canonical_id=node.canonical_id,
                    method=normalize_http_method(node.attributes.get("http_method")),
                    path=normalize_url(node.attributes.get("path")),
                )
                for node in endpoints
            ),
            key=lambda r: r.canonical_id,
        )

    def link(self, http_method: str | None, url: str | None) -> LinkResult:
        """Find the endpoint an outbound call targets."""
        if not self._routes:
            return LinkResult.failure("no_endpoints")

        path = normalize_url(url)
        segments = self._segments(path)
        if not segments or all(s == WILDCARD for s in segments):
            return LinkResult.failure("dynamic_url")

        method = normalize_http_method(http_method)
        any_method = method in WILDCARD_HTTP_METHODS

        for exact in (True, False):
            matches = [r for r in self._routes if self._path_matches(r.path, segments, exact)]
            if not matches:
                continue
            allowed = [r for r in matches if any_method or r.method == method]
            if allowed:
                return LinkResult.success(self._most_specific(allowed).canonical_id)
            return LinkResult.failure("method_mismatch")

        # Context or gateway prefix: "/user-service/api/users/{*}"
        suffix_matches = [
            r
            for r in self._routes
            if len(self._segments(r.path)) >= 2
            and len(self._segments(r.path)) < len(segments)
            and self._path_matches(r.path, segments[-len(self._segments(r.path)) :], False)
        ]
        allowed = [r for r in suffix_matches if any_method or r.method == method]
        if allowed:
            return LinkResult.success(
                self._most_specific(allowed).canonical_id, SUFFIX_MATCHED_REASON
            )
        if suffix_matches:
            return LinkResult.failure("method_mismatch")
        return LinkResult.failure("path_mismatch")

    @staticmethod
    def _segments(path: str) -> list[str]:
        return [s for s in path.split("/") if s]

    def _path_matches(self, pattern: str, request: list[str], exact: bool) -> bool:
        """Match an endpoint pattern against call path segments.

        Pattern: /api/users/{*}
        Request: /api/users/me
        -> True unless exact is requested
        """
        pattern_parts = self._segments(pattern)
        if len(pattern_parts) != len(request):
            return False
        for p_part, r_part in zip(pattern_parts, request):
            if p_part == r_part:
                continue
            if exact or p_part != WILDCARD:
                return False
        return True

    def _most_specific(self, routes: list[_EndpointRoute]) -> _EndpointRoute:
        """Most literal segments wins; routes are pre-sorted so ties are stable."""

        def specificity(route: _EndpointRoute) -> tuple[int, int]:
            segments = self._segments(route.path)
            literal = sum(1 for s in segments if s != WILDCARD)
            return (literal, len(segments))

        best = max(specificity(r) for r in routes)
        return next(r for r in routes if specificity(r) == best)
