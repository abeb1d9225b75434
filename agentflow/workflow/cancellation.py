# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Cancellation tokens

One token per node execution. Cancelling is one-way; listeners run
synchronously at the moment of cancellation, or immediately when added to a
token that is already cancelled.
"""

import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    def __init__(self, name: str = ""):
        self.name = name
        self.reason: Optional[str] = None
        self._cancelled = False
        self._listeners: List[Callable[[Optional[str]], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "Workflow cancelled") -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self.reason = reason
        logger.debug(f"Token '{self.name}' cancelled: {reason}")
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener(reason)

    def add_listener(self, listener: Callable[[Optional[str]], None]) -> None:
        if self._cancelled:
            listener(self.reason)
            return
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[Optional[str]], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
