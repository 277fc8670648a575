"""Errors raised by provider adapters and key handling, outside the domain."""

from __future__ import annotations

from typing import Optional


class ToolError(Exception):
    """A call to an external provider failed.

    ``status_code`` carries the upstream HTTP status when there was one.
    ``retryable`` is false for answers that will not change on retry
    (4xx other than 429, unparsable bodies).
    """

    def __init__(
        self,
        tool: str,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
    ):
        self.tool = tool
        self.status_code = status_code
        if retryable is None:
            retryable = status_code is None or status_code == 429 or status_code >= 500
        self.retryable = retryable
        super().__init__(f"[{tool}] {message}")


class KeyMissingError(Exception):
    """Required key is missing."""

    def __init__(self, name: str):
        self.key_name = name
        super().__init__(f"Missing required API key: {name} (configure it in .env)")
