"""Canonical identity for architecture elements.

A canonical id is a deterministic string derived only from semantic
attributes: never from source position, insertion order, or storage keys.
The same element in two checkouts always gets the same id, and the id
changes whenever a semantic attribute (signature, path, HTTP method,
table or topic name) changes.

Formats:
    controller:{fqcn}            service:{fqcn}         repository:{fqcn}
    application:{app_key}        endpoint:{METHOD}:{normalized path}
    method:{fqcn}.{name}({T1,T2})
    external:{METHOD}:{normalized url}:resolved={true|false}
    kafka_topic:{name}           database_table:{table name, lower case}
    edges: {kind}:{source id}->{target id}
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from shadowgraph.core.errors import InvalidFactError
from shadowgraph.models.types import EdgeKind, NodeKind

# Stamped on every snapshot. Bump when any format or normalization rule
# below changes; snapshots with different versions are not comparable.
CANONICAL_ID_VERSION = "1"

WILDCARD = "{*}"

_SCHEME_HOST = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://[^/?#]*")
_LEADING_PLACEHOLDER = re.compile(r"^\$\{[^}]*\}(?=/)")
_VARIABLE_SEGMENT = re.compile(r"^(\$?\{[^}]*\}|:[A-Za-z_]\w*|<[^>]+>)$")
_INLINE_VARIABLE = re.compile(r"\$?\{[^}]*\}|<dynamic>")
_NUMERIC = re.compile(r"^\d+$")
_UUID = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_ANNOTATION = re.compile(r"@[\w.]+(\([^)]*\))?")
_WHITESPACE = re.compile(r"\s+")

# HTTP "methods" that mean the client did not pin one down.
WILDCARD_HTTP_METHODS = frozenset({"UNKNOWN", "REQUEST", "ANY", "*"})


# =============================================================================
# Normalization
# =============================================================================


def normalize_path(path: str | None) -> str:
    """Normalize an endpoint path or call URL to its canonical form.

    Strips protocol, host, port, query and fragment, drops a leading
    `${...}` base-url placeholder, and replaces path variables, numeric
    segments and UUID segments with `{*}`. Literal segments are kept
    verbatim (case-sensitive). Empty segments are dropped.

    Args:
        path: Raw path or URL.

    Returns:
        Normalized path, always starting with '/'.
    """
    if not path:
        return "/"

    value = path.strip()
    if "://" in value:
        value = _SCHEME_HOST.sub("", value, count=1)
    elif value.startswith("//"):
        value = "/" + value[2:].partition("/")[2]

    value = _LEADING_PLACEHOLDER.sub("", value, count=1)
    value = value.split("?", 1)[0].split("#", 1)[0]

    segments = [_normalize_segment(s) for s in value.split("/") if s]
    return "/" + "/".join(segments)


def _normalize_segment(segment: str) -> str:
    if (
        _VARIABLE_SEGMENT.match(segment)
        or _NUMERIC.match(segment)
        or _UUID.match(segment)
    ):
        return WILDCARD
    return _INLINE_VARIABLE.sub(WILDCARD, segment)


def normalize_url(url: str | None) -> str:
    """Normalize an outbound call URL. Same rules as normalize_path."""
    return normalize_path(url)


def normalize_http_method(method: str | None) -> str:
    """Upper-case an HTTP method; missing methods become UNKNOWN."""
    if not method:
        return "UNKNOWN"
    return method.strip().upper()


def split_top_level(text: str, separator: str = ",") -> list[str]:
    """Split on separator, ignoring separators nested in <>, () or []."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for char in text:
        if char in "<([":
            depth += 1
        elif char in ">)]":
            depth = max(0, depth - 1)
        if char == separator and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return [p for p in (part.strip() for part in parts) if p]


def extract_parameter_types(signature: str | None) -> list[str]:
    """Extract parameter types from a method declaration.

    "getUser(@PathVariable Long id, Map<String, Integer> opts)"
    -> ["Long", "Map<String,Integer>"]

    Annotations and `final` are dropped, parameter names are dropped,
    all whitespace inside a type is removed.
    """
    if not signature:
        return []

    inner = signature
    open_paren = signature.find("(")
    if open_paren != -1:
        close_paren = signature.rfind(")")
        if close_paren == -1 or close_paren < open_paren:
            close_paren = len(signature)
        inner = signature[open_paren + 1 : close_paren]

    types: list[str] = []
    for param in split_top_level(inner):
        param = _ANNOTATION.sub(" ", param)
        tokens = [t for t in param.split() if t != "final"]
        if not tokens:
            continue
        # A trailing token is the parameter name unless the type itself
        # ends the declaration (e.g. "Map<String, Integer>").
        if len(tokens) > 1 and _is_identifier(tokens[-1]):
            tokens = tokens[:-1]
        types.append(normalize_type(" ".join(tokens)))
    return types


def normalize_type(type_name: str) -> str:
    """Remove all whitespace from a type expression."""
    return _WHITESPACE.sub("", type_name)


def _is_identifier(token: str) -> bool:
    return token.isidentifier()


# =============================================================================
# Per-kind identity
# =============================================================================


def class_canonical_id(kind: NodeKind, fully_qualified_name: str) -> str:
    """Canonical id for a Controller, Service or RepositoryClass."""
    return f"{kind.value}:{fully_qualified_name}"


def application_canonical_id(app_key: str) -> str:
    return f"{NodeKind.APPLICATION.value}:{app_key}"


def endpoint_canonical_id(http_method: str, path: str) -> str:
    return (
        f"{NodeKind.ENDPOINT.value}:{normalize_http_method(http_method)}"
        f":{normalize_path(path)}"
    )


def method_canonical_id(
    class_name: str,
    method_name: str,
    parameter_types: Iterable[str] | None = None,
    signature: str | None = None,
) -> str:
    """Canonical id for a method, from its declaring class and signature.

    Args:
        class_name: Fully qualified name of the declaring class.
        method_name: Simple method name.
        parameter_types: Parameter types, in order. Takes precedence.
        signature: Declaration text to extract types from when
            parameter_types is not given.
    """
    if parameter_types is None:
        types = extract_parameter_types(signature)
    else:
        types = [normalize_type(t) for t in parameter_types]
    return f"{NodeKind.METHOD.value}:{class_name}.{method_name}({','.join(types)})"


def external_call_canonical_id(
    http_method: str | None, url: str, resolved: bool
) -> str:
    flag = "true" if resolved else "false"
    return (
        f"{NodeKind.EXTERNAL_CALL.value}:{normalize_http_method(http_method)}"
        f":{normalize_url(url)}:resolved={flag}"
    )


def kafka_topic_canonical_id(name: str) -> str:
    return f"{NodeKind.KAFKA_TOPIC.value}:{name}"


def database_table_canonical_id(table_name: str) -> str:
    return f"{NodeKind.DATABASE_TABLE.value}:{table_name.lower()}"


def edge_canonical_id(kind: EdgeKind, source: str, target: str) -> str:
    """Canonical edge identity: '{kind}:{source}->{target}'."""
    return f"{kind.value.lower()}:{source}->{target}"


def fully_qualified_name(attributes: dict[str, Any]) -> str | None:
    """Fully qualified class name from fqcn or package + simple name."""
    fqcn = attributes.get("fully_qualified_name")
    if fqcn:
        return fqcn
    class_name = attributes.get("class_name")
    if not class_name:
        return None
    package = attributes.get("package_name")
    return f"{package}.{class_name}" if package else class_name


def node_canonical_id(kind: NodeKind, attributes: dict[str, Any]) -> str:
    """Compute a node's canonical id from its kind and attributes.

    Raises:
        InvalidFactError: An identity attribute is missing.
    """

    def require(key: str) -> Any:
        value = attributes.get(key)
        if value is None or value == "":
            raise InvalidFactError(kind.name, key)
        return value

    if kind.is_class:
        fqcn = fully_qualified_name(attributes)
        if not fqcn:
            raise InvalidFactError(kind.name, "fully_qualified_name")
        return class_canonical_id(kind, fqcn)
    if kind == NodeKind.APPLICATION:
        return application_canonical_id(require("app_key"))
    if kind == NodeKind.ENDPOINT:
        return endpoint_canonical_id(require("http_method"), require("path"))
    if kind == NodeKind.METHOD:
        return method_canonical_id(
            require("class_name"),
            require("method_name"),
            parameter_types=attributes.get("parameter_types"),
            signature=attributes.get("signature"),
        )
    if kind == NodeKind.EXTERNAL_CALL:
        return external_call_canonical_id(
            attributes.get("http_method"),
            require("url"),
            bool(attributes.get("resolved")),
        )
    if kind == NodeKind.KAFKA_TOPIC:
        return kafka_topic_canonical_id(require("name"))
    if kind == NodeKind.DATABASE_TABLE:
        return database_table_canonical_id(require("table_name"))
    raise InvalidFactError(kind.name, "kind")
