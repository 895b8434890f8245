from stepwright.graph.builder import GraphBuilder, build_graph
from stepwright.graph.critical_path import CriticalPathAnalyzer
from stepwright.graph.models import Graph, TaskDeclaration, load_declarations
from stepwright.graph.readiness import ReadinessCalculator

__all__ = [
    "CriticalPathAnalyzer",
    "Graph",
    "GraphBuilder",
    "ReadinessCalculator",
    "TaskDeclaration",
    "build_graph",
    "load_declarations",
]
