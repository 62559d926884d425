"""Architecture graph model, snapshot assembly and cross-cutting linkage."""

from shadowgraph.graph.builder import GraphBuilder
from shadowgraph.graph.linker import EndpointLinker, LinkResult
from shadowgraph.graph.model import ArchitectureGraph
from shadowgraph.graph.resolver import ApplicationResolver, ResolveResult
from shadowgraph.graph.snapshot import GraphSnapshot

__all__ = [
    "ApplicationResolver",
    "ArchitectureGraph",
    "EndpointLinker",
    "GraphBuilder",
    "GraphSnapshot",
    "LinkResult",
    "ResolveResult",
]
