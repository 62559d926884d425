"""Structural diff between production and shadow snapshots."""

from shadowgraph.diff.engine import compute_diff, property_diffs

__all__ = ["compute_diff", "property_diffs"]
