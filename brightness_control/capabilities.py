"""
Capability String Parser
========================

Monitors describe themselves over DDC/CI with a capability string like this
(wrapped and shortened):

    (prot(monitor)type(LCD)model(Blah)cmds(01 02 03 07 0C E3 F3)
    vcp(02 04 05 08 0C 10 12 14(01 05 06 08 0B))
    mswhql(1)asset_eep(40)mccs_ver(2.2))

We only care about the top-level codes of the ``vcp()`` group and the
``mccs_ver()`` value.
"""

import re
import logging
from dataclasses import dataclass
from typing import FrozenSet

logger = logging.getLogger(__name__)

VCP_BRIGHTNESS = 0x10
VCP_CONTRAST = 0x12

_VCP_RE = re.compile(r'vcp\(', re.IGNORECASE)
_MCCS_VER_RE = re.compile(r'mccs_ver\(([^()]*)\)', re.IGNORECASE)
_HEX_RE = re.compile(r'[0-9A-Fa-f]+')


class CapabilityError(Exception):
    """Exception raised for capability strings that cannot be parsed."""

    def __init__(self, message: str, position: int):
        super().__init__(f"{message} at offset {position}")
        self.position = position


@dataclass(frozen=True)
class Capabilities:
    """Parsed capability string."""
    protocol_version: str
    feature_codes: FrozenSet[int]

    @property
    def supports_brightness(self) -> bool:
        return VCP_BRIGHTNESS in self.feature_codes

    @property
    def supports_contrast(self) -> bool:
        return VCP_CONTRAST in self.feature_codes


def parse_protocol_version(text: str) -> str:
    """Return the ``mccs_ver()`` argument verbatim, or an empty string."""
    match = _MCCS_VER_RE.search(text)
    return match.group(1) if match else ""


def parse_vcp_codes(text: str) -> FrozenSet[int]:
    """
    Collect the top-level feature codes listed in the ``vcp()`` group.

    Codes nested inside a feature's value list (e.g. the ``01 05`` in
    ``14(01 05)``) are skipped.

    Args:
        text: Raw capability string

    Returns:
        Set of feature codes, empty if there is no ``vcp()`` group

    Raises:
        CapabilityError: On a stray character or unbalanced parentheses
    """
    match = _VCP_RE.search(text)
    if not match:
        return frozenset()

    codes = set()
    pos = match.end()
    depth = 1
    while depth > 0:
        if pos >= len(text):
            raise CapabilityError("Unterminated vcp() group", pos)

        ch = text[pos]
        if ch.isspace():
            pos += 1
        elif ch == '(':
            depth += 1
            pos += 1
        elif ch == ')':
            depth -= 1
            pos += 1
        else:
            token = _HEX_RE.match(text, pos)
            if not token:
                raise CapabilityError(f"Unexpected character {ch!r} in vcp() group", pos)
            if depth == 1:
                codes.add(int(token.group(0), 16))
            pos = token.end()

    return frozenset(codes)


def parse_capabilities(text: str) -> Capabilities:
    """
    Parse a monitor capability string.

    Args:
        text: Raw capability string as returned by the monitor

    Returns:
        Capabilities with the MCCS version and supported VCP codes

    Raises:
        CapabilityError: If the vcp() group is malformed
    """
    capabilities = Capabilities(
        protocol_version=parse_protocol_version(text),
        feature_codes=parse_vcp_codes(text),
    )
    logger.debug(
        f"Parsed capabilities: MCCS {capabilities.protocol_version or '?'}, "
        f"{len(capabilities.feature_codes)} VCP codes"
    )
    return capabilities
