"""
Brightness Control - one brightness/contrast control for all DDC/CI monitors
============================================================================

- Parses monitor capability strings to find brightness/contrast support
- Maps a normalized level onto each monitor's native range
- Per-monitor "neutral" contrast calibration
"""

__version__ = "1.0.0"
__author__ = "Brightness Control"

from .capabilities import Capabilities, CapabilityError, parse_capabilities
from .channel import ChannelError, MonitorChannel, PhysicalMonitor
from .config import Config
from .controller import MonitorControl, MonitorRecord, ProbeReport

__all__ = [
    "Capabilities",
    "CapabilityError",
    "parse_capabilities",
    "ChannelError",
    "MonitorChannel",
    "PhysicalMonitor",
    "Config",
    "MonitorControl",
    "MonitorRecord",
    "ProbeReport",
]
