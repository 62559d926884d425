"""Test graph fixtures."""

from tests.fixtures.graphs.sample_facts import (
    PROJECT_ID,
    StaticFrontEnd,
    build_snapshot,
    make_production,
    make_shadow,
    make_shop_bundle,
)

__all__ = [
    "PROJECT_ID",
    "StaticFrontEnd",
    "build_snapshot",
    "make_production",
    "make_shadow",
    "make_shop_bundle",
]
