"""Analysis configuration and the risk weight table.

WEIGHT TABLE IS the scoring model. Adding or retuning a risk factor means
editing one row; the assessor reads this table and nothing else.

Configuration is passed explicitly to every entry point. load_config()
builds it from defaults, a dict, or a YAML file.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from shadowgraph.core.errors import ConfigError
from shadowgraph.models.types import EdgeKind, FactorSeverity, RiskCategory


@dataclass(frozen=True)
class FactorWeight:
    """One row of the weight table.

    A factor contributes min(cap, points * (count // per)) to its category.
    """

    category: RiskCategory
    points: int
    cap: int
    severity: FactorSeverity
    description: str  # formatted with {count}
    per: int = 1
    escalate_at: int | None = None  # count at which severity becomes HIGH


CATEGORY_CAPS: dict[RiskCategory, int] = {
    RiskCategory.BREAKING_CHANGES: 40,
    RiskCategory.DOWNSTREAM_IMPACT: 30,
    RiskCategory.SERVICE_CRITICALITY: 20,
    RiskCategory.CHANGE_COMPLEXITY: 10,
}

MAX_SCORE = 100

WEIGHT_TABLE: dict[str, FactorWeight] = {
    # -- Breaking changes (cap 40) --
    "api_url_changed": FactorWeight(
        category=RiskCategory.BREAKING_CHANGES,
        points=15,
        cap=35,
        severity=FactorSeverity.HIGH,
        description="{count} API URL change(s) may break existing consumers",
    ),
    "endpoint_removed": FactorWeight(
        category=RiskCategory.BREAKING_CHANGES,
        points=10,
        cap=30,
        severity=FactorSeverity.HIGH,
        description="{count} endpoint(s) removed",
    ),
    "controller_changed": FactorWeight(
        category=RiskCategory.BREAKING_CHANGES,
        points=10,
        cap=25,
        severity=FactorSeverity.HIGH,
        description="{count} controller(s) modified or removed",
    ),
    "endpoint_unresolved": FactorWeight(
        category=RiskCategory.BREAKING_CHANGES,
        points=8,
        cap=16,
        severity=FactorSeverity.HIGH,
        description="{count} outbound call(s) no longer resolve to a known endpoint",
    ),
    "endpoint_modified": FactorWeight(
        category=RiskCategory.BREAKING_CHANGES,
        points=5,
        cap=15,
        severity=FactorSeverity.MEDIUM,
        description="{count} endpoint contract(s) changed",
    ),
    "method_removed": FactorWeight(
        category=RiskCategory.BREAKING_CHANGES,
        points=3,
        cap=12,
        severity=FactorSeverity.MEDIUM,
        description="{count} method signature(s) removed or changed",
    ),
    "topic_removed": FactorWeight(
        category=RiskCategory.BREAKING_CHANGES,
        points=5,
        cap=10,
        severity=FactorSeverity.MEDIUM,
        description="{count} Kafka topic(s) no longer produced or consumed",
    ),
    "new_error_cycle": FactorWeight(
        category=RiskCategory.BREAKING_CHANGES,
        points=10,
        cap=15,
        severity=FactorSeverity.HIGH,
        description="{count} new circular dependency(ies) across services",
    ),
    # -- Downstream impact (cap 30) --
    "affected_endpoint": FactorWeight(
        category=RiskCategory.DOWNSTREAM_IMPACT,
        points=3,
        cap=15,
        severity=FactorSeverity.MEDIUM,
        description="{count} API endpoint(s) affected",
        escalate_at=5,
    ),
    "affected_flow": FactorWeight(
        category=RiskCategory.DOWNSTREAM_IMPACT,
        points=2,
        cap=10,
        severity=FactorSeverity.MEDIUM,
        description="{count} request flow(s) pass through changed code",
    ),
    "high_fan_in_component": FactorWeight(
        category=RiskCategory.DOWNSTREAM_IMPACT,
        points=3,
        cap=5,
        severity=FactorSeverity.MEDIUM,
        description="{count} changed component(s) with many upstream callers",
    ),
    "new_warning_cycle": FactorWeight(
        category=RiskCategory.DOWNSTREAM_IMPACT,
        points=2,
        cap=4,
        severity=FactorSeverity.LOW,
        description="{count} new circular dependency(ies) within one service",
    ),
    # -- Service criticality (cap 20) --
    "core_layer_changed": FactorWeight(
        category=RiskCategory.SERVICE_CRITICALITY,
        points=4,
        cap=12,
        severity=FactorSeverity.MEDIUM,
        description="{count} service or repository component(s) changed",
    ),
    "messaging_changed": FactorWeight(
        category=RiskCategory.SERVICE_CRITICALITY,
        points=8,
        cap=8,
        severity=FactorSeverity.HIGH,
        description="{count} message producer/consumer change(s)",
    ),
    "services_touched": FactorWeight(
        category=RiskCategory.SERVICE_CRITICALITY,
        points=3,
        cap=9,
        severity=FactorSeverity.LOW,
        description="{count} services touched by one change",
        escalate_at=3,
    ),
    # -- Change complexity (cap 10) --
    "structural_changes": FactorWeight(
        category=RiskCategory.CHANGE_COMPLEXITY,
        points=1,
        cap=5,
        severity=FactorSeverity.LOW,
        description="{count} node(s) added, modified or removed",
        per=2,
    ),
    "relationship_changes": FactorWeight(
        category=RiskCategory.CHANGE_COMPLEXITY,
        points=1,
        cap=3,
        severity=FactorSeverity.LOW,
        description="{count} relationship(s) added or removed",
        per=5,
    ),
    "lines_changed": FactorWeight(
        category=RiskCategory.CHANGE_COMPLEXITY,
        points=0,  # tiered, see LINE_TIERS
        cap=5,
        severity=FactorSeverity.LOW,
        description="{count} lines changed",
        escalate_at=500,
    ),
}

# (lines changed above which the tier applies, points), highest tier first.
LINE_TIERS: tuple[tuple[int, int], ...] = ((500, 5), (250, 3), (100, 2))

DEFAULT_CYCLE_EDGE_KINDS = frozenset(
    {EdgeKind.CALLS, EdgeKind.MAKES_EXTERNAL_CALL, EdgeKind.CALLS_ENDPOINT}
)

DEFAULT_IMPACT_EDGE_KINDS = frozenset(
    {
        EdgeKind.CALLS,
        EdgeKind.MAKES_EXTERNAL_CALL,
        EdgeKind.CALLS_ENDPOINT,
        EdgeKind.PRODUCES_TO,
        EdgeKind.CONSUMES_FROM,
    }
)


@dataclass(frozen=True)
class RiskThresholds:
    """Upper bounds (inclusive) of LOW, MEDIUM and HIGH. Above is CRITICAL."""

    low_max: int = 25
    medium_max: int = 50
    high_max: int = 75

    def __post_init__(self) -> None:
        if not 0 <= self.low_max < self.medium_max < self.high_max < MAX_SCORE:
            raise ConfigError(
                "risk.thresholds",
                f"expected 0 <= low < medium < high < {MAX_SCORE}, got "
                f"{self.low_max}/{self.medium_max}/{self.high_max}",
            )


@dataclass(frozen=True)
class CycleConfig:
    edge_kinds: frozenset[EdgeKind] = DEFAULT_CYCLE_EDGE_KINDS
    max_cycles_per_component: int = 100
    include_intra_class_calls: bool = False


@dataclass(frozen=True)
class ImpactConfig:
    max_depth: int = 5
    edge_kinds: frozenset[EdgeKind] = DEFAULT_IMPACT_EDGE_KINDS


@dataclass(frozen=True)
class RiskConfig:
    thresholds: RiskThresholds = field(default_factory=RiskThresholds)
    weights: dict[str, FactorWeight] = field(default_factory=lambda: dict(WEIGHT_TABLE))
    high_fan_in: int = 3  # upstream callers that make a component "hot"


@dataclass(frozen=True)
class OrchestratorConfig:
    poll_interval_seconds: float = 5.0
    max_poll_attempts: int = 120
    snapshot_ttl_hours: float = 24.0
    reaper_interval_seconds: float = 3600.0
    max_workers: int = 4
    default_base_branch: str = "main"


@dataclass(frozen=True)
class ShadowGraphConfig:
    """Top-level configuration, one section per component."""

    cycles: CycleConfig = field(default_factory=CycleConfig)
    impact: ImpactConfig = field(default_factory=ImpactConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)


# =============================================================================
# Loading
# =============================================================================


def load_config(
    source: ShadowGraphConfig | str | Path | dict[str, Any] | None,
) -> ShadowGraphConfig:
    """Load configuration from various sources.

    Args:
        source: Can be:
            - ShadowGraphConfig instance: returned as-is
            - str or Path: treated as a YAML file path
            - dict: sections keyed by component name
            - None: all defaults

    Returns:
        ShadowGraphConfig instance

    Raises:
        ConfigError: Unknown section or key, wrong type, unreadable file
    """
    if source is None:
        return ShadowGraphConfig()
    if isinstance(source, ShadowGraphConfig):
        return source
    if isinstance(source, (str, Path)):
        return _load_from_yaml_file(Path(source))
    if isinstance(source, dict):
        return _load_from_dict(source)
    raise ConfigError("<root>", f"unsupported source type {type(source).__name__}")


def _load_from_yaml_file(path: Path) -> ShadowGraphConfig:
    if not path.exists():
        raise ConfigError(str(path), "file not found")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(str(path), f"invalid YAML: {e}") from e

    if data is None:
        return ShadowGraphConfig()
    if not isinstance(data, dict):
        raise ConfigError(str(path), f"expected mapping, got {type(data).__name__}")
    # Allow the whole file to be nested under a top-level "shadowgraph" key.
    if set(data) == {"shadowgraph"}:
        data = data["shadowgraph"] or {}
    return _load_from_dict(data)


def _load_from_dict(data: dict[str, Any]) -> ShadowGraphConfig:
    config = ShadowGraphConfig()
    loaders = {
        "cycles": _load_cycles,
        "impact": _load_impact,
        "risk": _load_risk,
        "orchestrator": _load_orchestrator,
    }
    for section, values in data.items():
        if section not in loaders:
            raise ConfigError(section, "unknown section")
        if not isinstance(values, dict):
            raise ConfigError(section, "section must be a mapping")
        config = replace(config, **{section: loaders[section](values)})
    return config


def _load_cycles(values: dict[str, Any]) -> CycleConfig:
    _reject_unknown("cycles", values, {"edge_kinds", "max_cycles_per_component", "include_intra_class_calls"})
    defaults = CycleConfig()
    return CycleConfig(
        edge_kinds=_edge_kinds("cycles.edge_kinds", values.get("edge_kinds"), defaults.edge_kinds),
        max_cycles_per_component=_positive_int(
            "cycles.max_cycles_per_component",
            values.get("max_cycles_per_component", defaults.max_cycles_per_component),
        ),
        include_intra_class_calls=_bool(
            "cycles.include_intra_class_calls",
            values.get("include_intra_class_calls", defaults.include_intra_class_calls),
        ),
    )


def _load_impact(values: dict[str, Any]) -> ImpactConfig:
    _reject_unknown("impact", values, {"max_depth", "edge_kinds"})
    defaults = ImpactConfig()
    return ImpactConfig(
        max_depth=_positive_int("impact.max_depth", values.get("max_depth", defaults.max_depth)),
        edge_kinds=_edge_kinds("impact.edge_kinds", values.get("edge_kinds"), defaults.edge_kinds),
    )


def _load_risk(values: dict[str, Any]) -> RiskConfig:
    _reject_unknown("risk", values, {"thresholds", "weights", "high_fan_in"})
    defaults = RiskConfig()

    thresholds = defaults.thresholds
    if "thresholds" in values:
        raw = values["thresholds"]
        if not isinstance(raw, dict):
            raise ConfigError("risk.thresholds", "must be a mapping")
        _reject_unknown("risk.thresholds", raw, {"low_max", "medium_max", "high_max"})
        thresholds = RiskThresholds(
            low_max=_positive_int("risk.thresholds.low_max", raw.get("low_max", thresholds.low_max), allow_zero=True),
            medium_max=_positive_int("risk.thresholds.medium_max", raw.get("medium_max", thresholds.medium_max)),
            high_max=_positive_int("risk.thresholds.high_max", raw.get("high_max", thresholds.high_max)),
        )

    weights = dict(defaults.weights)
    for name, override in (values.get("weights") or {}).items():
        if name not in weights:
            raise ConfigError(f"risk.weights.{name}", "unknown risk factor")
        if not isinstance(override, dict):
            raise ConfigError(f"risk.weights.{name}", "must be a mapping")
        _reject_unknown(f"risk.weights.{name}", override, {"points", "cap", "per"})
        changes = {
            key: _positive_int(f"risk.weights.{name}.{key}", value, allow_zero=key != "per")
            for key, value in override.items()
        }
        weights[name] = replace(weights[name], **changes)

    return RiskConfig(
        thresholds=thresholds,
        weights=weights,
        high_fan_in=_positive_int("risk.high_fan_in", values.get("high_fan_in", defaults.high_fan_in)),
    )


def _load_orchestrator(values: dict[str, Any]) -> OrchestratorConfig:
    defaults = OrchestratorConfig()
    _reject_unknown("orchestrator", values, set(defaults.__dataclass_fields__))
    changes: dict[str, Any] = {}
    for key, value in values.items():
        dotted = f"orchestrator.{key}"
        if key == "default_base_branch":
            if not isinstance(value, str) or not value:
                raise ConfigError(dotted, "must be a non-empty string")
            changes[key] = value
        elif key in ("max_poll_attempts", "max_workers"):
            changes[key] = _positive_int(dotted, value)
        else:
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError(dotted, f"must be a positive number, got {value!r}")
            changes[key] = float(value)
    return replace(defaults, **changes)


def _reject_unknown(section: str, values: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(values) - allowed)
    if unknown:
        raise ConfigError(f"{section}.{unknown[0]}", "unknown key")


def _positive_int(key: str, value: Any, allow_zero: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(key, f"must be an integer, got {type(value).__name__}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(key, f"must be positive, got {value}")
    return value


def _bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(key, f"must be a boolean, got {type(value).__name__}")
    return value


def _edge_kinds(key: str, value: Any, default: frozenset[EdgeKind]) -> frozenset[EdgeKind]:
    if value is None:
        return default
    if not isinstance(value, list) or not value:
        raise ConfigError(key, "must be a non-empty list of edge kinds")
    try:
        return frozenset(EdgeKind(str(v).upper()) for v in value)
    except ValueError as e:
        raise ConfigError(key, str(e)) from e
