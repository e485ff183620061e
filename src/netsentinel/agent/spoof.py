# NetSentinel Agent - Gateway Spoof Tracking
"""
State machine for gateway hardware-address changes.

A changed gateway MAC is only reported once the new address has been seen
repeatedly over a confirmation period. Transient flips (roaming, DHCP
renewal, a second AP) settle back to the baseline without an alert.

    Stable --mismatch--> Suspected --same suspect--> Confirming --confirmed--> Stable(new)
       ^                     |                            |
       +------ matches baseline / different suspect -----+

The transition function is pure: it takes the current tracker and one
observation and returns the next tracker plus an optional detection.
"""

from dataclasses import dataclass, replace
from typing import Union

from ..config import DetectorSettings


@dataclass(frozen=True)
class Stable:
    baseline: str | None = None


@dataclass(frozen=True)
class Suspected:
    baseline: str | None
    suspect: str
    since: float
    rechecks: int = 1


@dataclass(frozen=True)
class Confirming:
    baseline: str | None
    suspect: str
    since: float
    rechecks: int


GatewayState = Union[Stable, Suspected, Confirming]


@dataclass(frozen=True)
class SpoofTracker:
    """Gateway state plus the interface it belongs to."""
    state: GatewayState = Stable()
    interface: str | None = None
    changed_at: float | None = None  # when the interface last changed


@dataclass(frozen=True)
class GatewayObservation:
    """One reading of the gateway's hardware address."""
    interface: str
    gateway_ip: str
    mac: str | None
    hotspot: bool = False


@dataclass(frozen=True)
class SpoofDetection:
    """A confirmed gateway hardware-address change."""
    gateway_ip: str
    previous_mac: str | None
    new_mac: str
    rechecks: int
    elapsed: float
    hotspot: bool


def advance(
    tracker: SpoofTracker,
    observation: GatewayObservation,
    now: float,
    settings: DetectorSettings,
) -> tuple[SpoofTracker, SpoofDetection | None]:
    """Apply one gateway observation taken at monotonic time `now`."""
    if observation.interface != tracker.interface:
        if tracker.interface is None:
            tracker = replace(tracker, interface=observation.interface)
        else:
            return SpoofTracker(Stable(None), observation.interface, now), None

    if tracker.changed_at is not None and now - tracker.changed_at < settings.network_change_grace:
        return tracker, None

    mac = observation.mac
    if not mac:
        return tracker, None

    state = tracker.state

    if state.baseline is None:
        return replace(tracker, state=Stable(mac)), None

    if mac == state.baseline:
        return replace(tracker, state=Stable(state.baseline)), None

    if isinstance(state, Stable) or state.suspect != mac:
        return replace(tracker, state=Suspected(state.baseline, mac, now)), None

    rechecks = state.rechecks + 1
    elapsed = now - state.since
    confirming = Confirming(state.baseline, mac, state.since, rechecks)

    if elapsed < settings.recheck_window:
        return replace(tracker, state=confirming), None

    period = (
        settings.hotspot_confirmation_seconds
        if observation.hotspot
        else settings.confirmation_seconds
    )

    if elapsed >= period and rechecks >= settings.max_rechecks:
        detection = SpoofDetection(
            gateway_ip=observation.gateway_ip,
            previous_mac=state.baseline,
            new_mac=mac,
            rechecks=rechecks,
            elapsed=elapsed,
            hotspot=observation.hotspot,
        )
        return replace(tracker, state=Stable(mac)), detection

    return replace(tracker, state=confirming), None
