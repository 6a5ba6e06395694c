"""Graph data-service layer for requirements, baselines, trace links and architecture diagrams."""

__version__ = "0.1.0"
