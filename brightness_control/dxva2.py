"""
dxva2 Channel - Monitor access on Windows through the Monitor Configuration API
==============================================================================

Note that the capability request only works for some (mostly older) MCCS
versions; monitors that fail it are reported without brightness/contrast.
"""

import sys
import ctypes
import logging
from typing import List, Sequence, Tuple

from .channel import ChannelError, MonitorChannel, PhysicalMonitor

logger = logging.getLogger(__name__)

PHYSICAL_MONITOR_DESCRIPTION_SIZE = 128


class Dxva2Channel(MonitorChannel):
    """MonitorChannel implementation using user32/dxva2 via ctypes."""

    def __init__(self):
        if sys.platform != 'win32':
            raise ChannelError("The dxva2 backend is only available on Windows")

        from ctypes import wintypes

        class _PHYSICAL_MONITOR(ctypes.Structure):
            _fields_ = [('handle', wintypes.HANDLE),
                        ('description', wintypes.WCHAR * PHYSICAL_MONITOR_DESCRIPTION_SIZE)]

        self._wintypes = wintypes
        self._physical_monitor = _PHYSICAL_MONITOR
        self._monitor_enum_proc = ctypes.WINFUNCTYPE(
            wintypes.BOOL, wintypes.HMONITOR, wintypes.HDC, ctypes.POINTER(wintypes.RECT), wintypes.LPARAM
        )
        self._user32 = ctypes.windll.user32
        self._dxva2 = ctypes.windll.dxva2

    @staticmethod
    def _check(ok, what: str):
        if not ok:
            raise ChannelError(f"{what} failed: {ctypes.WinError()}")

    def enumerate_logical_monitors(self) -> Sequence[int]:
        monitors: List[int] = []

        def callback(hmonitor, hdc, lprect, lparam):
            monitors.append(hmonitor)
            return True

        proc = self._monitor_enum_proc(callback)
        self._check(self._user32.EnumDisplayMonitors(None, None, proc, 0), "EnumDisplayMonitors")
        logger.debug(f"Found {len(monitors)} logical monitor(s)")
        return monitors

    def physical_monitors_of(self, logical: int) -> Sequence[PhysicalMonitor]:
        wt = self._wintypes
        count = wt.DWORD()
        self._check(
            self._dxva2.GetNumberOfPhysicalMonitorsFromHMONITOR(wt.HMONITOR(logical), ctypes.byref(count)),
            "GetNumberOfPhysicalMonitorsFromHMONITOR",
        )
        if count.value == 0:
            return []

        physical_array = (self._physical_monitor * count.value)()
        self._check(
            self._dxva2.GetPhysicalMonitorsFromHMONITOR(wt.HMONITOR(logical), count.value, physical_array),
            "GetPhysicalMonitorsFromHMONITOR",
        )
        return [PhysicalMonitor(handle=p.handle, description=p.description) for p in physical_array]

    def capability_string(self, handle: int) -> str:
        wt = self._wintypes
        length = wt.DWORD()
        self._check(
            self._dxva2.GetCapabilitiesStringLength(wt.HANDLE(handle), ctypes.byref(length)),
            "GetCapabilitiesStringLength",
        )
        buffer = ctypes.create_string_buffer(length.value)
        self._check(
            self._dxva2.CapabilitiesRequestAndCapabilitiesReply(wt.HANDLE(handle), buffer, length),
            "CapabilitiesRequestAndCapabilitiesReply",
        )
        return buffer.value.decode('ascii', errors='replace')

    def get_feature(self, handle: int, code: int) -> Tuple[int, int]:
        wt = self._wintypes
        current = wt.DWORD()
        maximum = wt.DWORD()
        self._check(
            self._dxva2.GetVCPFeatureAndVCPFeatureReply(
                wt.HANDLE(handle), wt.BYTE(code), None, ctypes.byref(current), ctypes.byref(maximum)
            ),
            f"GetVCPFeatureAndVCPFeatureReply(0x{code:02x})",
        )
        return current.value, maximum.value

    def set_feature(self, handle: int, code: int, value: int) -> None:
        wt = self._wintypes
        self._check(
            self._dxva2.SetVCPFeature(wt.HANDLE(handle), wt.BYTE(code), wt.DWORD(value)),
            f"SetVCPFeature(0x{code:02x})",
        )

    def release_physical_monitors(self, monitors: Sequence[PhysicalMonitor]) -> None:
        failed = 0
        for monitor in monitors:
            if not self._dxva2.DestroyPhysicalMonitor(self._wintypes.HANDLE(monitor.handle)):
                failed += 1
        if failed:
            raise ChannelError(f"DestroyPhysicalMonitor failed for {failed} of {len(monitors)} handle(s)")
