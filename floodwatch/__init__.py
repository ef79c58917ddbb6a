"""FloodWatch — zone flood-risk aggregation for the Brahmaputra basin."""

__version__ = "1.0.0"
