"""
Module: generation.cancellation

Purpose:
    Cooperative cancellation for a generation run. The UI (or CLI signal
    handler) calls `cancel()`; the generation phase checks the token before
    issuing each external call. Calls already in flight are allowed to
    finish or are abandoned, but their results are never written to the
    cache once the token has fired.
"""

from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)


class GenerationCancelled(Exception):
    """The generation run was cancelled before completion."""
    pass


class CancellationToken:
    """
    One-shot cancellation flag.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel("dialog closed")
        >>> token.cancelled
        True
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._cancelled:
            logger.info(f"Generation cancelled: {reason}")
        self._cancelled = True
        self._reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise GenerationCancelled(self._reason or "cancelled")
