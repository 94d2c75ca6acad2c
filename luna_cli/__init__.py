"""LUNA: static call-graph, library-API and dependency-tree scanner for JavaScript projects."""

__version__ = "1.0.0"
