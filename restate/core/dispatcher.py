"""Concurrent fan-out of one device call across many handles."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

from restate.core.device import DeviceHandle
from restate.core.errors import RestateError
from restate.core.model import DispatchOutcome, DispatchResult

OK = "OK"
LOGGER = logging.getLogger(__name__)


def unique_targets(targets: Sequence[DeviceHandle]) -> list[DeviceHandle]:
    seen: set[str] = set()
    unique: list[DeviceHandle] = []
    for handle in targets:
        if handle.name in seen:
            continue
        seen.add(handle.name)
        unique.append(handle)
    return unique


def dispatch_one(handle: DeviceHandle, code: str, value: str | None = None) -> DispatchOutcome:
    """Invoke ``code`` on one device, folding transport failures into the outcome."""
    try:
        payload = handle.invoke(code, value)
    except RestateError as exc:
        LOGGER.info("Device '%s' failed %s: %s", handle.name, code, exc)
        return DispatchOutcome(device_name=handle.name, succeeded=False)
    return DispatchOutcome(
        device_name=handle.name,
        succeeded=True,
        payload=OK if payload is None else payload,
    )


def dispatch_many(
    targets: Sequence[DeviceHandle],
    code: str,
    value: str | None = None,
) -> DispatchResult:
    """Run ``dispatch_one`` for every unique target and wait for all of them.

    No failure cancels the other calls; total latency is bounded by the
    slowest device's timeout.
    """
    handles = unique_targets(targets)
    if not handles:
        return DispatchResult(outcomes=())

    outcomes: list[DispatchOutcome] = []
    with ThreadPoolExecutor(max_workers=len(handles), thread_name_prefix="dispatch") as pool:
        futures = {pool.submit(dispatch_one, handle, code, value): handle for handle in handles}
        for future in as_completed(futures):
            handle = futures[future]
            try:
                outcomes.append(future.result())
            except Exception:
                LOGGER.exception("Unexpected error dispatching %s to '%s'", code, handle.name)
                outcomes.append(DispatchOutcome(device_name=handle.name, succeeded=False))
    return DispatchResult(outcomes=tuple(outcomes))
