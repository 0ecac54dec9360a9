"""Transport interfaces."""

from __future__ import annotations

from typing import Any, Protocol


class Transport(Protocol):
    def send(
        self,
        host: str,
        *,
        method: str,
        namespace: str,
        payload: str,
        key: str = "",
        timeout_s: float = 1.0,
    ) -> dict[str, Any] | None:
        """Send one signed call to a hub; GET calls return the decoded envelope."""
