"""Vote-based toggle: infer one target state from the current state of many devices."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from restate.core.device import DeviceHandle
from restate.core.dispatcher import dispatch_many, unique_targets
from restate.core.errors import AllTargetsFailedError, RestateError
from restate.core.model import DispatchOutcome, DispatchResult
from restate.core.responses import onoff_of

STATUS_CODE = "status"
TOGGLE_CODE = "toggle"
LOGGER = logging.getLogger(__name__)

Dispatch = Callable[..., DispatchResult]


@dataclass(frozen=True)
class ToggleDecision:
    desired: int
    tally: int
    voters: tuple[str, ...]
    result: DispatchResult


def desired_state(tally: int, voters: int) -> int:
    """Return the majority-inverse state.

    Mostly off, or an exact tie, switches everything on; mostly on switches
    everything off.
    """
    return 1 if tally <= voters // 2 else 0


def resolve_toggle(
    targets: Sequence[DeviceHandle],
    *,
    dispatch: Dispatch = dispatch_many,
) -> ToggleDecision:
    handles = unique_targets(targets)
    probe = dispatch(handles, STATUS_CODE, None)

    by_name = {handle.name: handle for handle in handles}
    survivors: list[DeviceHandle] = []
    lost: list[DispatchOutcome] = []
    tally = 0
    for outcome in probe.succeeded:
        try:
            vote = onoff_of(outcome.payload)
        except RestateError as exc:
            LOGGER.info("Ignoring vote from '%s': %s", outcome.device_name, exc)
            lost.append(DispatchOutcome(device_name=outcome.device_name, succeeded=False))
            continue
        tally += vote
        survivors.append(by_name[outcome.device_name])

    if not survivors:
        raise AllTargetsFailedError("No device answered the status probe")

    desired = desired_state(tally, len(survivors))
    LOGGER.info(
        "Toggle vote: %d of %d on, switching %s",
        tally,
        len(survivors),
        "on" if desired else "off",
    )

    applied = dispatch(survivors, TOGGLE_CODE, str(desired))
    unreachable = tuple(
        DispatchOutcome(device_name=name, succeeded=False) for name in probe.failed
    )
    result = DispatchResult(outcomes=applied.outcomes + unreachable + tuple(lost))
    if applied.all_failed:
        raise AllTargetsFailedError("Every surviving device failed the toggle")

    return ToggleDecision(
        desired=desired,
        tally=tally,
        voters=tuple(handle.name for handle in survivors),
        result=result,
    )
