# src/castengine/core/__init__.py
"""Core building blocks: value context, configuration, paths, and versions."""
