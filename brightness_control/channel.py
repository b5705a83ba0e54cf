"""
Monitor Control Channel
=======================

Abstract interface between the brightness controller and the operating
system's DDC/CI access. Implementations live in ``ddcutil.py`` (Linux) and
``dxva2.py`` (Windows).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Hashable, Sequence, Tuple


class ChannelError(Exception):
    """Exception raised for monitor communication errors."""
    pass


@dataclass(frozen=True)
class PhysicalMonitor:
    """A physical monitor handle plus the description the display reports."""
    handle: Hashable
    description: str


class MonitorChannel(ABC):
    """
    Low-level access to DDC/CI monitors.

    Every method raises ChannelError when the underlying I/O fails.
    """

    @abstractmethod
    def enumerate_logical_monitors(self) -> Sequence[Any]:
        """Return the logical display monitors known to the system."""

    @abstractmethod
    def physical_monitors_of(self, logical: Any) -> Sequence[PhysicalMonitor]:
        """Return the physical monitors behind a logical monitor."""

    @abstractmethod
    def capability_string(self, handle: Hashable) -> str:
        """Request the raw capability string of a physical monitor."""

    @abstractmethod
    def get_feature(self, handle: Hashable, code: int) -> Tuple[int, int]:
        """
        Read a VCP feature.

        Returns:
            Tuple of (current_value, max_value)
        """

    @abstractmethod
    def set_feature(self, handle: Hashable, code: int, value: int) -> None:
        """Write a VCP feature."""

    @abstractmethod
    def release_physical_monitors(self, monitors: Sequence[PhysicalMonitor]) -> None:
        """Release handles obtained from physical_monitors_of()."""
