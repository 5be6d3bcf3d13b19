"""Inky Notes core - note persistence with debounced autosave on SQLite."""

__version__ = "0.1.0"
__author__ = "Inky Notes Team"
__description__ = (
    "Note persistence and autosave core: schema migration, repository, "
    "autosave coordination and editing sessions"
)

from .config import Config

__all__ = ["Config"]
