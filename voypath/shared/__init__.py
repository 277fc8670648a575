"""Shared exceptions."""

from voypath.shared.exceptions import KeyMissingError, ToolError

__all__ = ["ToolError", "KeyMissingError"]
