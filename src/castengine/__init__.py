"""castengine: template-driven task orchestration for cluster storage operations."""

__version__ = "0.1.0"
