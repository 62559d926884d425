"""Canonical identity for architecture graph elements."""

from shadowgraph.identity.canonical import (
    CANONICAL_ID_VERSION,
    WILDCARD,
    edge_canonical_id,
    extract_parameter_types,
    method_canonical_id,
    node_canonical_id,
    normalize_path,
    normalize_url,
)
from shadowgraph.identity.properties import ResolvedValue, resolve_placeholders

__all__ = [
    "CANONICAL_ID_VERSION",
    "WILDCARD",
    "ResolvedValue",
    "edge_canonical_id",
    "extract_parameter_types",
    "method_canonical_id",
    "node_canonical_id",
    "normalize_path",
    "normalize_url",
    "resolve_placeholders",
]
