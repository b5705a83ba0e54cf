"""
ddcutil Channel - Monitor access on Linux through the ddcutil CLI
=================================================================
"""

import os
import re
import glob
import time
import logging
import threading
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .channel import ChannelError, MonitorChannel, PhysicalMonitor

logger = logging.getLogger(__name__)


class DdcutilError(ChannelError):
    """Exception raised when a ddcutil command fails."""
    pass


@dataclass
class DetectedDisplay:
    """A display reported by ``ddcutil detect``."""
    display_number: int
    i2c_bus: int
    model: str = "Unknown"
    manufacturer: str = "Unknown"
    serial: str = ""
    drm_connector: str = ""

    def __str__(self):
        return f"{self.manufacturer} {self.model} (Display {self.display_number})"

    @property
    def description(self) -> str:
        if self.model and self.model != "Unknown":
            return self.model
        return f"Display {self.display_number}"


_CAPABILITIES_RE = re.compile(r'Unparsed capabilities string:\s*(\S.*)')
_GETVCP_RE = re.compile(
    r'VCP code 0x([0-9A-Fa-f]+)\s+\(([^)]+)\).*?'
    r'current value\s*=\s*(\d+).*?max value\s*=\s*(\d+)',
    re.IGNORECASE
)


def parse_detect_output(output: str) -> List[DetectedDisplay]:
    """
    Parse the output of ``ddcutil detect --terse``.

    Sections for invalid displays (no "Display N" header) are skipped.
    """
    displays = []
    current: Dict[str, Any] = {}

    def flush():
        if current.get('display_number') and current.get('i2c_bus') is not None:
            displays.append(DetectedDisplay(**current))

    for line in output.split('\n'):
        line = line.strip()
        if not line:
            flush()
            current = {}
            continue

        if line.startswith('Display'):
            match = re.match(r'Display (\d+)', line)
            if match:
                current['display_number'] = int(match.group(1))
        elif ':' in line:
            key, _, value = line.partition(':')
            key = key.strip().lower().replace(' ', '_')
            value = value.strip()

            # Terse format has "Monitor: MFG:Model:Serial"
            if key == 'monitor' and ':' in value:
                parts = value.split(':')
                current['manufacturer'] = parts[0] or 'Unknown'
                if len(parts) >= 2:
                    current['model'] = parts[1] or 'Unknown'
                if len(parts) >= 3:
                    current['serial'] = parts[2]
            elif key == 'i2c_bus':
                match = re.search(r'(\d+)$', value)
                if match:
                    current['i2c_bus'] = int(match.group(1))
            elif key == 'drm_connector':
                current['drm_connector'] = value

    flush()
    return displays


class DdcutilChannel(MonitorChannel):
    """
    MonitorChannel implementation that shells out to ddcutil.

    Every detected display is one logical monitor with exactly one physical
    monitor, addressed by its I2C bus number.
    """

    def __init__(
        self,
        retry_count: int = 1,
        sleep_multiplier: float = 0.5,
        timeout: float = 5.0,
    ):
        """
        Initialize the ddcutil channel.

        Args:
            retry_count: Number of attempts per command
            sleep_multiplier: ddcutil --sleep-multiplier value
            timeout: Per-command timeout in seconds
        """
        self.retry_count = max(1, retry_count)
        self.sleep_multiplier = sleep_multiplier
        self.timeout = timeout
        self._lock = threading.Lock()
        self._last_command_time = 0.0
        self._min_command_interval = 0.1 * sleep_multiplier

    def _run_ddcutil(
        self,
        command: List[str],
        bus: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        """
        Run a ddcutil command with retry logic.

        Args:
            command: Command arguments to pass to ddcutil
            bus: I2C bus of the target display, or None
            timeout: Command timeout in seconds (default: self.timeout)

        Returns:
            CompletedProcess result

        Raises:
            DdcutilError: If command fails after retries
        """
        full_command = ["ddcutil", "--sleep-multiplier", f"{self.sleep_multiplier:.1f}"]
        if bus is not None:
            full_command.extend(["--bus", str(bus)])
        full_command.extend(command)

        with self._lock:
            # Rate limiting
            elapsed = time.time() - self._last_command_time
            if elapsed < self._min_command_interval:
                time.sleep(self._min_command_interval - elapsed)

            last_error = None
            for attempt in range(self.retry_count):
                logger.debug(f"DDC[{bus}] Running (attempt {attempt + 1}): {' '.join(full_command)}")
                try:
                    result = subprocess.run(
                        full_command,
                        capture_output=True,
                        text=True,
                        timeout=timeout or self.timeout,
                        check=True,
                    )
                    self._last_command_time = time.time()
                    return result
                except subprocess.CalledProcessError as e:
                    last_error = e
                    stderr_msg = e.stderr.strip() if e.stderr else "(no stderr)"
                    logger.warning(
                        f"DDC[{bus}] Command failed (attempt {attempt + 1}/{self.retry_count}): "
                        f"{' '.join(command)} → {stderr_msg}"
                    )
                    if attempt < self.retry_count - 1:
                        time.sleep(0.3 * (attempt + 1))
                except subprocess.TimeoutExpired as e:
                    last_error = e
                    logger.warning(
                        f"DDC[{bus}] Command timed out (attempt {attempt + 1}/{self.retry_count}): "
                        f"{' '.join(command)}"
                    )
                except FileNotFoundError as e:
                    raise DdcutilError("ddcutil not found") from e

        raise DdcutilError(f"DDC command '{' '.join(command)}' failed after {self.retry_count} attempts: {last_error}")

    def enumerate_logical_monitors(self) -> Sequence[DetectedDisplay]:
        result = self._run_ddcutil(["detect", "--terse"], timeout=30)
        displays = parse_detect_output(result.stdout)
        for d in displays:
            logger.info(f"Detected {d} on i2c-{d.i2c_bus}")
        return displays

    def physical_monitors_of(self, logical: DetectedDisplay) -> Sequence[PhysicalMonitor]:
        return [PhysicalMonitor(handle=logical.i2c_bus, description=logical.description)]

    def capability_string(self, handle: int) -> str:
        result = self._run_ddcutil(["capabilities", "--verbose"], bus=handle, timeout=30)
        match = _CAPABILITIES_RE.search(result.stdout)
        if not match:
            raise DdcutilError(f"No capability string in ddcutil output for i2c-{handle}")
        return match.group(1).strip()

    def get_feature(self, handle: int, code: int) -> Tuple[int, int]:
        result = self._run_ddcutil(["getvcp", f"0x{code:02x}"], bus=handle)
        # e.g. "VCP code 0x10 (Brightness): current value = 50, max value = 100"
        match = _GETVCP_RE.search(result.stdout)
        if not match:
            raise DdcutilError(f"Failed to parse VCP response: {result.stdout.strip()}")
        return int(match.group(3)), int(match.group(4))

    def set_feature(self, handle: int, code: int, value: int) -> None:
        # no verification read
        self._run_ddcutil(["setvcp", f"0x{code:02x}", str(value), "--noverify"], bus=handle)

    def release_physical_monitors(self, monitors: Sequence[PhysicalMonitor]) -> None:
        # Bus numbers are not OS resources
        logger.debug(f"Released {len(monitors)} ddcutil display(s)")


def check_ddcutil_available() -> Tuple[bool, str]:
    """
    Check if ddcutil is installed and working.

    Returns:
        Tuple of (is_available, message)
    """
    try:
        result = subprocess.run(
            ["ddcutil", "--version"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            version = result.stdout.split('\n')[0] if result.stdout else "unknown"
            return True, f"ddcutil found: {version}"
        else:
            return False, f"ddcutil error: {result.stderr}"
    except FileNotFoundError:
        return False, "ddcutil not found. Install with: sudo apt install ddcutil"
    except subprocess.TimeoutExpired:
        return False, "ddcutil timed out"
    except OSError as e:
        return False, f"Error checking ddcutil: {e}"


def check_i2c_permissions() -> Tuple[bool, str]:
    """
    Check if user has permissions to access I2C devices.

    Returns:
        Tuple of (has_permission, message)
    """
    i2c_devices = glob.glob('/dev/i2c-*')
    if not i2c_devices:
        return False, "No I2C devices found. Load i2c-dev module: sudo modprobe i2c-dev"

    for device in i2c_devices:
        if os.access(device, os.R_OK | os.W_OK):
            return True, f"I2C device {device} is accessible"

    return False, (
        "Cannot access I2C devices. Add user to i2c group:\n"
        "  sudo usermod -aG i2c $USER\n"
        "Then log out and back in."
    )
