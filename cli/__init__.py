"""Command line tools for the GreenThread monitoring service."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)

# ``cli.app`` stays the module so tests can patch ``cli.app.ApiClient``.

__all__ = []
