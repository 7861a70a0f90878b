# src/castengine/plugins/__init__.py
"""External collaborators of the engine: cluster clients and task-spec fetchers."""
