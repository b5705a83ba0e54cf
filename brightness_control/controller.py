"""
Brightness/Contrast Controller
==============================

Probes all DDC/CI monitors through a MonitorChannel and drives them from one
normalized brightness level and one normalized contrast level.
"""

import math
import logging
import threading
from dataclasses import dataclass, replace
from typing import Dict, Hashable, List, Mapping, Optional, Tuple

from .capabilities import CapabilityError, VCP_BRIGHTNESS, VCP_CONTRAST, parse_capabilities
from .channel import ChannelError, MonitorChannel, PhysicalMonitor
from .settings import NeutralContrastSettings, resolve_neutral_contrast

logger = logging.getLogger(__name__)

# Upper bound of get_max_contrast(): 200% of neutral
MAX_CONTRAST_RATIO = 2.0

DEFAULT_MAX_PHYSICAL_MONITORS = 32


@dataclass(frozen=True)
class MonitorRecord:
    """Snapshot of a probed monitor."""
    handle: Hashable
    name: str
    protocol_version: str = ""
    supports_brightness: bool = False
    current_brightness: Optional[int] = None
    max_brightness: Optional[int] = None
    supports_contrast: bool = False
    current_contrast: Optional[int] = None
    max_contrast: Optional[int] = None
    neutral_contrast: Optional[int] = None


@dataclass
class ProbeReport:
    """Outcome of one probe() pass."""
    added: int = 0
    duplicates: int = 0
    truncated: int = 0
    failed: int = 0


def _check_level(value: float) -> float:
    if not math.isfinite(value):
        raise ValueError(f"Level must be a finite number, got {value!r}")
    return value


def _round_half_up(value: float) -> int:
    # half away from zero for the non-negative values we deal with
    return int(math.floor(value + 0.5))


class MonitorControl:
    """
    Owns the monitor registry and the two logical levels.

    The registry is a list of records plus a handle -> index map. Records are
    only changed through the methods of this class; monitor_list() returns
    immutable copies.
    """

    def __init__(
        self,
        channel: MonitorChannel,
        settings: Optional[Mapping[str, int]] = None,
        max_physical_monitors: int = DEFAULT_MAX_PHYSICAL_MONITORS,
    ):
        """
        Initialize the controller. Call probe() to discover monitors.

        Args:
            channel: Channel used for all monitor I/O
            settings: Saved neutral contrast per monitor name
            max_physical_monitors: Cap on physical monitors per logical monitor
        """
        self._channel = channel
        self._settings: NeutralContrastSettings = dict(settings or {})
        self.max_physical_monitors = max_physical_monitors
        self._lock = threading.RLock()

        self._records: List[MonitorRecord] = []
        self._index: Dict[Hashable, int] = {}

        # Handles to release on close(), in acquisition order
        self._acquired: List[PhysicalMonitor] = []
        self._acquired_handles: set = set()
        self._closed = False

        self._brightness = 0.0
        self._contrast = 0.0
        self._brightness_seeded = False
        self._contrast_seeded = False

    def __enter__(self) -> 'MonitorControl':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # Probing

    def probe(self) -> ProbeReport:
        """
        Discover monitors and add the ones not yet in the registry.

        Returns:
            ProbeReport with counts of added, duplicate, truncated and
            failed physical monitors
        """
        report = ProbeReport()
        with self._lock:
            if self._closed:
                logger.warning("Controller is closed, not looking for monitors")
                return report

            try:
                logical_monitors = list(self._channel.enumerate_logical_monitors())
            except ChannelError as e:
                logger.error(f"Failed to enumerate monitors: {e}")
                return report

            for logical in logical_monitors:
                try:
                    physical = list(self._channel.physical_monitors_of(logical))
                except ChannelError as e:
                    logger.warning(f"Failed to get physical monitors of {logical}: {e}")
                    continue

                if len(physical) > self.max_physical_monitors:
                    dropped = physical[self.max_physical_monitors:]
                    physical = physical[:self.max_physical_monitors]
                    report.truncated += len(dropped)
                    logger.warning(
                        f"Logical monitor {logical} has {len(physical) + len(dropped)} physical monitors, "
                        f"ignoring {len(dropped)} beyond the limit of {self.max_physical_monitors}"
                    )
                    self._release(self._unowned(dropped, physical))

                for monitor in physical:
                    self._acquire(monitor)
                    if monitor.handle in self._index:
                        report.duplicates += 1
                        continue

                    record, ok = self._probe_monitor(monitor)
                    self._index[monitor.handle] = len(self._records)
                    self._records.append(record)
                    self._seed_levels(record)
                    report.added += 1
                    if not ok:
                        report.failed += 1

        logger.info(
            f"Probe finished: {report.added} new monitor(s), {report.failed} failed, "
            f"{report.duplicates} duplicate(s), {report.truncated} truncated"
        )
        return report

    def _probe_monitor(self, monitor: PhysicalMonitor) -> Tuple[MonitorRecord, bool]:
        """Build the record for one physical monitor. Returns (record, complete)."""
        record = MonitorRecord(handle=monitor.handle, name=monitor.description)
        try:
            capabilities = parse_capabilities(self._channel.capability_string(monitor.handle))
        except (ChannelError, CapabilityError) as e:
            logger.warning(f"Monitor '{record.name}': could not read capabilities: {e}")
            return record, False

        record = replace(record, protocol_version=capabilities.protocol_version)
        try:
            if capabilities.supports_brightness:
                current, maximum = self._channel.get_feature(monitor.handle, VCP_BRIGHTNESS)
                if maximum > 0:
                    record = replace(
                        record,
                        supports_brightness=True,
                        current_brightness=max(0, min(maximum, current)),
                        max_brightness=maximum,
                    )
                else:
                    logger.warning(f"Monitor '{record.name}' reports brightness range 0, ignoring it")

            if capabilities.supports_contrast:
                current, maximum = self._channel.get_feature(monitor.handle, VCP_CONTRAST)
                if maximum > 0:
                    record = replace(
                        record,
                        supports_contrast=True,
                        current_contrast=max(0, min(maximum, current)),
                        max_contrast=maximum,
                        neutral_contrast=resolve_neutral_contrast(record.name, maximum, self._settings),
                    )
                else:
                    logger.warning(f"Monitor '{record.name}' reports contrast range 0, ignoring it")
        except ChannelError as e:
            logger.warning(f"Monitor '{record.name}': failed to read current values: {e}")
            return record, False

        logger.info(
            f"Monitor '{record.name}': MCCS {record.protocol_version or '?'}, "
            f"brightness={record.current_brightness}/{record.max_brightness}, "
            f"contrast={record.current_contrast}/{record.max_contrast} (neutral {record.neutral_contrast})"
        )
        return record, True

    def _seed_levels(self, record: MonitorRecord):
        """Take the logical levels from the first capable monitor."""
        if record.supports_brightness and not self._brightness_seeded:
            self._brightness = record.current_brightness / record.max_brightness
            self._brightness_seeded = True
        if record.supports_contrast and not self._contrast_seeded:
            self._contrast = record.current_contrast / record.neutral_contrast
            self._contrast_seeded = True

    # Handle lifetime

    def _acquire(self, monitor: PhysicalMonitor):
        if monitor.handle not in self._acquired_handles:
            self._acquired_handles.add(monitor.handle)
            self._acquired.append(monitor)

    def _unowned(
        self,
        dropped: List[PhysicalMonitor],
        kept: List[PhysicalMonitor],
    ) -> List[PhysicalMonitor]:
        """Distinct handles in dropped that nothing kept or acquired refers to."""
        seen = {m.handle for m in kept} | self._acquired_handles
        unowned = []
        for monitor in dropped:
            if monitor.handle not in seen:
                seen.add(monitor.handle)
                unowned.append(monitor)
        return unowned

    def _release(self, monitors: List[PhysicalMonitor]):
        if not monitors:
            return
        try:
            self._channel.release_physical_monitors(monitors)
        except ChannelError as e:
            logger.warning(f"Failed to release {len(monitors)} monitor handle(s): {e}")

    def close(self):
        """Release every physical monitor handle. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            acquired, self._acquired = self._acquired, []
            self._acquired_handles.clear()
            if acquired:
                logger.debug(f"Releasing {len(acquired)} monitor handle(s)")
                self._release(acquired)

    # Brightness

    def get_brightness(self) -> float:
        """Get the logical brightness (0.0 - 1.0)."""
        return self._brightness

    def set_brightness(self, value: float) -> bool:
        """
        Set brightness on all monitors.

        Args:
            value: Logical brightness, clamped to 0.0 - 1.0

        Returns:
            True if every required write succeeded

        Raises:
            ValueError: If value is NaN or infinite
        """
        value = _check_level(value)
        with self._lock:
            self._brightness = max(0.0, min(1.0, value))
            success = True
            for i, record in enumerate(self._records):
                if not record.supports_brightness:
                    continue
                target = _round_half_up(self._brightness * record.max_brightness)
                if target == record.current_brightness:
                    continue
                if self._write(record, VCP_BRIGHTNESS, target):
                    self._records[i] = replace(record, current_brightness=target)
                else:
                    success = False
            return success

    # Contrast

    def get_contrast(self) -> float:
        """Get the logical contrast (1.0 = neutral)."""
        return self._contrast

    def get_max_contrast(self) -> float:
        """
        Largest useful logical contrast.

        This is the monitor whose native range extends furthest past its
        neutral point, capped at MAX_CONTRAST_RATIO. 1.0 if no monitor
        supports contrast.
        """
        with self._lock:
            ratios = [
                r.max_contrast / r.neutral_contrast
                for r in self._records if r.supports_contrast
            ]
        if not ratios:
            return 1.0
        return min(MAX_CONTRAST_RATIO, max(ratios))

    def set_contrast(self, value: float) -> bool:
        """
        Set contrast on all monitors relative to their neutral contrast.

        Args:
            value: Logical contrast, 1.0 = neutral, clamped to
                0.0 - MAX_CONTRAST_RATIO

        Returns:
            True if every required write succeeded

        Raises:
            ValueError: If value is NaN or infinite
        """
        value = _check_level(value)
        with self._lock:
            self._contrast = max(0.0, min(MAX_CONTRAST_RATIO, value))
            success = True
            for i, record in enumerate(self._records):
                if not record.supports_contrast:
                    continue
                target = min(_round_half_up(self._contrast * record.neutral_contrast), record.max_contrast)
                if target == record.current_contrast:
                    continue
                if self._write(record, VCP_CONTRAST, target):
                    self._records[i] = replace(record, current_contrast=target)
                else:
                    success = False
            return success

    def reset_contrast(self) -> bool:
        """Return all monitors to their neutral contrast."""
        return self.set_contrast(1.0)

    def _write(self, record: MonitorRecord, code: int, value: int) -> bool:
        try:
            self._channel.set_feature(record.handle, code, value)
        except ChannelError as e:
            logger.error(f"Failed to set VCP 0x{code:02x} to {value} on '{record.name}': {e}")
            return False
        logger.debug(f"Set VCP 0x{code:02x} to {value} on '{record.name}'")
        return True

    # Settings

    def update_settings(self, settings: Mapping[str, int]) -> bool:
        """
        Replace the neutral contrast settings and re-apply the current contrast.

        Returns:
            Result of the contrast re-apply
        """
        with self._lock:
            self._settings = dict(settings)
            for i, record in enumerate(self._records):
                if record.supports_contrast:
                    neutral = resolve_neutral_contrast(record.name, record.max_contrast, self._settings)
                    self._records[i] = replace(record, neutral_contrast=neutral)
            logger.info(f"Neutral contrast settings updated ({len(self._settings)} entries)")
            return self.set_contrast(self._contrast)

    def neutral_contrast_settings(self) -> NeutralContrastSettings:
        """Current neutral contrast of every contrast-capable monitor, by name."""
        with self._lock:
            return {
                r.name: r.neutral_contrast
                for r in self._records if r.supports_contrast
            }

    # Queries

    def has_any_supported_monitors(self) -> bool:
        """True if at least one monitor supports brightness."""
        with self._lock:
            return any(r.supports_brightness for r in self._records)

    def monitor_list(self) -> Tuple[MonitorRecord, ...]:
        """Snapshot of all probed monitors in probe order."""
        with self._lock:
            return tuple(self._records)
