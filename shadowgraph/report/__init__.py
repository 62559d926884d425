"""Plain-data rendering of graphs, diffs and reports."""

from shadowgraph.report.serialize import (
    cycle_from_dict,
    cycle_to_dict,
    diff_from_dict,
    diff_to_dict,
    record_from_dict,
    record_to_dict,
    snapshot_from_dict,
    snapshot_to_dict,
    to_dict,
    to_json,
)

__all__ = [
    "cycle_from_dict",
    "cycle_to_dict",
    "diff_from_dict",
    "diff_to_dict",
    "record_from_dict",
    "record_to_dict",
    "snapshot_from_dict",
    "snapshot_to_dict",
    "to_dict",
    "to_json",
]
