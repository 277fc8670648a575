"""Runtime configuration helpers."""

from voypath.config.settings import RuntimeSettings, resolve_runtime_settings

__all__ = ["RuntimeSettings", "resolve_runtime_settings"]
