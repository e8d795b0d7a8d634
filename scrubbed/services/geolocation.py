"""
Geolocation tracker for collectors.

Keeps a best-effort current position from a platform position source,
pushes it to the collector profile when one exists and refreshes it on an
interval while the collector is available.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Protocol, Tuple

from scrubbed.core.config import get_settings
from scrubbed.domain.models import Coordinates

logger = logging.getLogger(__name__)


class PositionErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


ERROR_MESSAGES = {
    PositionErrorKind.PERMISSION_DENIED: "Please allow location access in your device settings and try again.",
    PositionErrorKind.POSITION_UNAVAILABLE: (
        "Location information is unavailable. Check your device settings and GPS signal."
    ),
    PositionErrorKind.TIMEOUT: "Location request timed out. Please try again.",
    PositionErrorKind.UNKNOWN: "Please enable location services and try again.",
}


class GeolocationError(Exception):
    def __init__(self, kind: PositionErrorKind, message: str | None = None):
        self.kind = kind
        self.message = message or f"Unable to get your location. {ERROR_MESSAGES[kind]}"
        super().__init__(self.message)


@dataclass(frozen=True)
class PositionOptions:
    enable_high_accuracy: bool = True
    timeout_seconds: float = 15
    maximum_age_seconds: float = 300


class PositionSource(Protocol):
    async def get_current_position(self, options: PositionOptions) -> Coordinates:
        """Return a fix or raise GeolocationError."""
        ...


class LocationSink(Protocol):
    async def update_location(self, profile_id: str, location: Coordinates) -> None:
        ...


class GeolocationTracker:
    def __init__(
        self,
        source: PositionSource,
        *,
        collector_profile_id: str | None = None,
        sink: LocationSink | None = None,
        refresh_seconds: float | None = None,
        options: PositionOptions | None = None,
    ) -> None:
        settings = get_settings()
        self.source = source
        self.collector_profile_id = collector_profile_id
        self.sink = sink
        self.refresh_seconds = refresh_seconds if refresh_seconds is not None else settings.location_refresh_seconds
        self.options = options or PositionOptions(
            timeout_seconds=settings.location_timeout_seconds,
            maximum_age_seconds=settings.location_max_age_seconds,
        )
        self.coordinates: Optional[Coordinates] = None
        self.error: Optional[str] = None
        self.error_kind: Optional[PositionErrorKind] = None
        self.loading = False
        self.available = False
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def refreshing(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    async def get_current_location(self) -> Optional[Coordinates]:
        """
        Ask the source for a fix. Failures are classified and kept in
        error/error_kind; the last known coordinates survive them.
        """
        self.loading = True
        try:
            coords = await asyncio.wait_for(
                self.source.get_current_position(self.options),
                timeout=self.options.timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._record_error(GeolocationError(PositionErrorKind.TIMEOUT))
            return self.coordinates
        except GeolocationError as exc:
            self._record_error(exc)
            return self.coordinates
        except Exception as exc:
            logger.warning("[geo] Position source failed: %s", exc)
            self._record_error(GeolocationError(PositionErrorKind.UNKNOWN))
            return self.coordinates
        finally:
            self.loading = False

        self.coordinates = coords
        self.error = None
        self.error_kind = None
        await self._push(coords)
        self._sync_refresh()
        return coords

    def _record_error(self, exc: GeolocationError) -> None:
        logger.info("[geo] Location error (%s): %s", exc.kind.value, exc.message)
        self.error = exc.message
        self.error_kind = exc.kind

    async def _push(self, coords: Coordinates) -> None:
        if not (self.collector_profile_id and self.sink):
            return
        try:
            await self.sink.update_location(self.collector_profile_id, coords)
        except Exception as exc:
            logger.warning("[geo] Could not store location for %s: %s", self.collector_profile_id, exc)

    async def set_available(self, available: bool) -> None:
        self.available = available
        if available and self.coordinates is None and not self.loading:
            await self.get_current_location()
        self._sync_refresh()

    def _sync_refresh(self) -> None:
        should_run = self.available and self.coordinates is not None
        if should_run and not self.refreshing:
            self._refresh_task = asyncio.create_task(self._refresh_loop())
        elif not should_run and self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None

    async def _refresh_loop(self) -> None:
        while self.available:
            await asyncio.sleep(self.refresh_seconds)
            if not self.available:
                break
            await self.get_current_location()

    async def close(self) -> None:
        self.available = False
        task, self._refresh_task = self._refresh_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def __aenter__(self) -> GeolocationTracker:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class ReportedPositionSource:
    """
    Position source fed by the collector's device.

    The device posts fixes (or the reason it has none) to the API. A fix no
    older than maximum_age is returned at once; a stale one makes the caller
    wait for the next report, which the tracker bounds with its timeout.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic, poll_seconds: float = 0.25) -> None:
        self._clock = clock
        self.poll_seconds = poll_seconds
        self._fix: Optional[Tuple[Coordinates, float]] = None
        self._failure: Optional[PositionErrorKind] = None

    def report(self, coords: Coordinates) -> None:
        self._fix = (coords, self._clock())
        self._failure = None

    def report_failure(self, kind: PositionErrorKind) -> None:
        self._failure = kind

    def _fresh_fix(self, max_age: float) -> Optional[Coordinates]:
        if self._fix is None:
            return None
        coords, reported_at = self._fix
        return coords if self._clock() - reported_at < max_age else None

    async def get_current_position(self, options: PositionOptions) -> Coordinates:
        while True:
            if self._failure is not None:
                raise GeolocationError(self._failure)
            if self._fix is None:
                raise GeolocationError(PositionErrorKind.POSITION_UNAVAILABLE)
            coords = self._fresh_fix(options.maximum_age_seconds)
            if coords is not None:
                return coords
            await asyncio.sleep(self.poll_seconds)


class CollectorTrackers:
    """One tracker per collector, pushing fixes to the collector profile store."""

    def __init__(self, sink: LocationSink, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.sink = sink
        self._clock = clock
        self._trackers: Dict[str, GeolocationTracker] = {}

    def for_collector(self, profile_id: str) -> GeolocationTracker:
        tracker = self._trackers.get(profile_id)
        if tracker is None:
            tracker = GeolocationTracker(
                ReportedPositionSource(clock=self._clock),
                collector_profile_id=profile_id,
                sink=self.sink,
            )
            self._trackers[profile_id] = tracker
        return tracker

    async def report(
        self, profile_id: str, coords: Coordinates, *, available: Optional[bool] = None
    ) -> GeolocationTracker:
        tracker = self.for_collector(profile_id)
        if available is not None:
            tracker.available = available
        tracker.source.report(coords)
        await tracker.get_current_location()
        return tracker

    async def report_failure(self, profile_id: str, kind: PositionErrorKind) -> GeolocationTracker:
        tracker = self.for_collector(profile_id)
        tracker.source.report_failure(kind)
        await tracker.get_current_location()
        return tracker

    async def discard(self, profile_id: str) -> None:
        tracker = self._trackers.pop(profile_id, None)
        if tracker is not None:
            await tracker.close()

    def __contains__(self, profile_id: str) -> bool:
        return profile_id in self._trackers
