"""Artifacts module streams model output into versioned documents (text, code, slides, charts)."""

__all__ = [
    "deltas",
    "kinds",
    "registry",
    "models",
    "repository",
    "store",
    "streaming",
    "service",
    "client_state",
    "schemas",
    "router",
]
