"""Placeholder resolution for configuration-driven names.

Topic names and base URLs are often written as `${kafka.topic.orders}` or
`${orders.topic:orders-v1}` and only become concrete through application
properties.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_PLACEHOLDER = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")


@dataclass
class ResolvedValue:
    """Outcome of resolving the placeholders in one value."""

    raw: str
    value: str
    unresolved_keys: list[str] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        """True if every placeholder was replaced."""
        return not self.unresolved_keys


def resolve_placeholders(raw: str, properties: dict[str, str]) -> ResolvedValue:
    """Replace `${key}` and `${key:default}` placeholders.

    Unresolvable placeholders (no property, no default) are left verbatim
    so the raw token survives into the canonical id.

    Args:
        raw: Value that may contain placeholders.
        properties: Flattened application properties.

    Returns:
        ResolvedValue with the substituted value and any unresolved keys.
    """
    unresolved: list[str] = []

    def substitute(match: re.Match[str]) -> str:
        key = match.group(1).strip()
        default = match.group(2)
        if key in properties:
            return str(properties[key])
        if default is not None:
            return default
        unresolved.append(key)
        return match.group(0)

    value = _PLACEHOLDER.sub(substitute, raw)
    return ResolvedValue(raw=raw, value=value, unresolved_keys=unresolved)
