"""Signed JSON-RPC over HTTP transport used by the Meross device families."""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
from typing import Any

import httpx

from restate.core.endpoints import METHOD_SET
from restate.core.errors import (
    MalformedResponseError,
    TransportError,
    TransportTimeoutError,
    TransportUnreachableError,
    VendorRejectedError,
)

NONCE_BYTES = 16
LOGGER = logging.getLogger(__name__)


def new_message_id() -> str:
    # Firmware 6.2.5 and later reject replayed message ids.
    return secrets.token_hex(NONCE_BYTES)


def sign(message_id: str, key: str, timestamp: int = 0) -> str:
    return hashlib.md5(f"{message_id}{key}{timestamp}".encode("utf-8")).hexdigest()


def build_envelope(host: str, method: str, namespace: str, payload: str, key: str = "") -> dict[str, Any]:
    # Templates are validated as JSON when families load.
    body = json.loads(payload)
    message_id = new_message_id()
    return {
        "header": {
            "from": f"http://{host}/config",
            "messageId": message_id,
            "method": method,
            "namespace": namespace,
            "payloadVersion": 1,
            "sign": sign(message_id, key),
            "timestamp": 0,
        },
        "payload": body,
    }


def _vendor_error(envelope: dict[str, Any]) -> VendorRejectedError | None:
    payload = envelope.get("payload")
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if not isinstance(error, dict) or not error.get("code"):
        return None
    detail = str(error.get("detail") or f"vendor error code {error['code']}")
    return VendorRejectedError(detail)


class SignedHTTPTransport:
    def __init__(self, *, client: httpx.Client | None = None) -> None:
        self._client = client or httpx.Client()

    def close(self) -> None:
        self._client.close()

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
        try:
            return self._send(host, method, namespace, payload, key, timeout_s)
        except TransportError as exc:
            LOGGER.warning("%s %s on %s failed: %s", method, namespace, host, exc)
            raise

    def _send(
        self,
        host: str,
        method: str,
        namespace: str,
        payload: str,
        key: str,
        timeout_s: float,
    ) -> dict[str, Any] | None:
        envelope = build_envelope(host, method, namespace, payload, key)
        url = f"http://{host}/config"

        try:
            response = self._client.post(url, json=envelope, timeout=timeout_s)
        except httpx.TimeoutException as exc:
            raise TransportTimeoutError(f"Call to {host} timed out after {timeout_s}s") from exc
        except httpx.HTTPError as exc:
            raise TransportUnreachableError(f"Could not reach {host}: {exc}") from exc

        if response.status_code != 200:
            raise VendorRejectedError(f"HTTP {response.status_code}")

        try:
            decoded = response.json() if response.content else None
        except ValueError as exc:
            if method == METHOD_SET:
                return None
            raise MalformedResponseError(f"Response from {host} is not JSON") from exc

        if method == METHOD_SET:
            if isinstance(decoded, dict):
                error = _vendor_error(decoded)
                if error is not None:
                    raise error
            return None

        if not isinstance(decoded, dict):
            raise MalformedResponseError(f"Response from {host} is not a JSON object")
        error = _vendor_error(decoded)
        if error is not None:
            raise error
        return decoded
