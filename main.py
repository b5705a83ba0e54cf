#!/usr/bin/env python3
"""
Brightness Control - one brightness/contrast level for all DDC/CI monitors
=========================================================================

Usage:
    python main.py [--config PATH] [--backend NAME] [--debug] [ACTION]

    Actions:
        --info              Show detected monitors (default)
        --detect            Check backend prerequisites and exit
        --brightness PCT    Set brightness of all monitors (0-100)
        --contrast PCT      Set contrast of all monitors (100 = neutral)
        --reset-contrast    Set all monitors to their neutral contrast
        --neutral NAME=VAL  Save the neutral contrast of a monitor (repeatable)
"""

import sys
import math
import argparse
import logging
from pathlib import Path
from typing import Iterable, Optional

from brightness_control.channel import ChannelError, MonitorChannel
from brightness_control.config import BACKENDS, Config
from brightness_control.controller import MonitorControl, MonitorRecord
from brightness_control.settings import merge_neutral_contrast, parse_neutral_assignments

logger = logging.getLogger(__name__)

DEFAULT_LOG_FILE = Path.home() / ".local" / "share" / "brightness-control" / "brightness-control.log"


def setup_logging(debug: bool = False, log_file: Optional[Path] = None):
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
    )


def percent_text(value: float) -> str:
    """Format a logical level as a percentage, e.g. 0.5 -> "50%"."""
    return f"{int(round(value * 100))}%"


def percent_arg(text: str) -> float:
    """argparse type for a finite percentage."""
    try:
        value = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid percentage: '{text}'")
    if not math.isfinite(value):
        raise argparse.ArgumentTypeError(f"percentage must be finite, got '{text}'")
    return value


def format_monitor_info(records: Iterable[MonitorRecord]) -> str:
    """Render the per-monitor info text."""
    blocks = []
    for m in records:
        lines = [m.name]
        lines.append(f" • MCCS version: {m.protocol_version or '—'}")

        brightness = f" • Brightness supported: {'Yes' if m.supports_brightness else 'No'}"
        if m.supports_brightness:
            brightness += f" (0 - {m.max_brightness})"
        lines.append(brightness)

        contrast = f" • Contrast supported: {'Yes' if m.supports_contrast else 'No'}"
        if m.supports_contrast:
            contrast += f" (0 - {m.max_contrast}) / {m.neutral_contrast}"
        lines.append(contrast)

        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def resolve_backend(backend: str) -> str:
    """Map 'auto' to the backend for this platform."""
    if backend == "auto":
        return "dxva2" if sys.platform == "win32" else "ddcutil"
    return backend


def create_channel(config: Config, backend: str) -> MonitorChannel:
    """
    Create the monitor channel for a backend.

    Raises:
        ChannelError: If the backend is not usable on this system
    """
    if backend == "dxva2":
        from brightness_control.dxva2 import Dxva2Channel
        return Dxva2Channel()

    from brightness_control.ddcutil import DdcutilChannel
    return DdcutilChannel(
        retry_count=config.ddc_retry_count,
        sleep_multiplier=config.ddc_sleep_multiplier,
        timeout=config.ddc_timeout,
    )


def check_prerequisites(backend: str) -> int:
    """Print prerequisite checks for the backend."""
    if backend == "dxva2":
        if sys.platform != "win32":
            print("Error: the dxva2 backend is only available on Windows")
            return 1
        print("✓ dxva2 available")
        return 0

    from brightness_control.ddcutil import check_ddcutil_available, check_i2c_permissions

    available, msg = check_ddcutil_available()
    if not available:
        print(f"Error: {msg}")
        return 1
    print(f"✓ {msg}")

    has_perms, msg = check_i2c_permissions()
    if not has_perms:
        print(f"Warning: {msg}")
    else:
        print(f"✓ {msg}")
    return 0


def load_config(config_path: Optional[Path]) -> Config:
    """Load the given or default configuration, creating the default file if missing."""
    config = Config(config_path)
    if config_path is None and not config.config_path.exists():
        logger.info("No configuration file found, creating default")
        Config.create_default_config()
    config.load()
    return config


def run(args: argparse.Namespace, config: Config, control: MonitorControl) -> int:
    """Probe monitors and perform the requested action."""
    report = control.probe()
    if report.truncated:
        logger.warning(f"{report.truncated} physical monitor(s) ignored")

    if args.neutral:
        try:
            updates = parse_neutral_assignments(args.neutral)
        except ValueError as e:
            print(f"Error: {e}")
            return 2
        # every listed monitor keeps its current neutral unless updated
        current = merge_neutral_contrast(config.neutral_contrast, control.neutral_contrast_settings())
        settings = merge_neutral_contrast(current, updates)
        if not config.set_neutral_contrast(settings):
            print(f"Error: could not save {config.config_path}")
            return 1
        ok = control.update_settings(settings)
        for name, value in sorted(updates.items()):
            print(f"Neutral contrast of {name} set to {value}")
        return 0 if ok else 1

    if not control.has_any_supported_monitors():
        print("No controllable monitors found")
        return 1

    ok = True
    if args.brightness is not None:
        ok &= control.set_brightness(args.brightness / 100.0)
        print(f"Brightness set to {percent_text(control.get_brightness())}")

    if args.reset_contrast:
        ok &= control.reset_contrast()
        print(f"Contrast set to {percent_text(control.get_contrast())}")
    elif args.contrast is not None:
        max_contrast = control.get_max_contrast()
        ok &= control.set_contrast(min(args.contrast / 100.0, max_contrast))
        print(f"Contrast set to {percent_text(control.get_contrast())} "
              f"(max {percent_text(max_contrast)})")

    if args.brightness is None and args.contrast is None and not args.reset_contrast:
        print(format_monitor_info(control.monitor_list()))
        print()
        print(f"Brightness: {percent_text(control.get_brightness())}")
        print(f"Contrast:   {percent_text(control.get_contrast())} "
              f"(max {percent_text(control.get_max_contrast())})")

    if not ok:
        print("Warning: some monitors could not be updated")
    return 0 if ok else 1


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Brightness Control - DDC/CI brightness and contrast for all monitors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        '--config', '-c',
        type=Path,
        help='Path to configuration file'
    )
    parser.add_argument(
        '--backend',
        choices=BACKENDS,
        help='Monitor access backend (default: from config, else auto)'
    )
    parser.add_argument(
        '--debug', '-d',
        action='store_true',
        help='Enable debug logging'
    )
    parser.add_argument(
        '--info',
        action='store_true',
        help='Show detected monitors (default action)'
    )
    parser.add_argument(
        '--detect',
        action='store_true',
        help='Check backend prerequisites and exit'
    )
    parser.add_argument(
        '--brightness', '-b',
        type=percent_arg,
        metavar='PCT',
        help='Set brightness (0-100)'
    )
    parser.add_argument(
        '--contrast',
        type=percent_arg,
        metavar='PCT',
        help='Set contrast in percent of neutral (100 = neutral)'
    )
    parser.add_argument(
        '--reset-contrast',
        action='store_true',
        help='Set contrast back to neutral'
    )
    parser.add_argument(
        '--neutral',
        action='append',
        metavar='NAME=VALUE',
        help='Save neutral contrast for a monitor name (repeatable)'
    )

    args = parser.parse_args(argv)

    log_file = None if args.detect else DEFAULT_LOG_FILE
    setup_logging(args.debug, log_file)

    config = load_config(args.config)
    backend = resolve_backend(args.backend or config.backend)

    if args.detect:
        return check_prerequisites(backend)

    try:
        channel = create_channel(config, backend)
    except ChannelError as e:
        print(f"Error: {e}")
        return 1

    with MonitorControl(
        channel,
        settings=config.neutral_contrast,
        max_physical_monitors=config.max_physical_monitors,
    ) as control:
        return run(args, config, control)


if __name__ == '__main__':
    sys.exit(main())
