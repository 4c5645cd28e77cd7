"""User-Agent parsing for session device metadata."""

import re
from dataclasses import dataclass
from typing import Optional

_MOBILE = re.compile(r"mobile|android|iphone|ipod|blackberry|iemobile|opera mini")
_TABLET = re.compile(r"tablet|ipad|playbook|silk")
_DESKTOP = re.compile(r"mozilla|chrome|safari|firefox|opera")


@dataclass(frozen=True)
class DeviceInfo:
    ip: Optional[str]
    user_agent: str
    device_type: str
    browser: str
    os: str
    location: Optional[str] = None


def _browser(ua: str) -> str:
    if "edg/" in ua:
        return "Edge"
    if "chrome/" in ua:
        return "Chrome"
    if "firefox/" in ua:
        return "Firefox"
    if "safari/" in ua and "chrome" not in ua:
        return "Safari"
    if "opera" in ua or "opr/" in ua:
        return "Opera"
    return "Unknown"


def _os(ua: str) -> str:
    if "windows nt 10.0" in ua:
        return "Windows 10/11"
    if "windows nt 6.3" in ua:
        return "Windows 8.1"
    if "windows nt 6.1" in ua:
        return "Windows 7"
    if "windows" in ua:
        return "Windows"
    # iOS user agents also contain "like mac os x", so check them first
    if "iphone" in ua or "ipad" in ua:
        m = re.search(r"os (\d+)_(\d+)", ua)
        return f"iOS {m.group(1)}.{m.group(2)}" if m else "iOS"
    if "mac os x" in ua:
        m = re.search(r"mac os x (\d+[._]\d+)", ua)
        return f"macOS {m.group(1).replace('_', '.')}" if m else "macOS"
    if "android" in ua:
        m = re.search(r"android (\d+(\.\d+)?)", ua)
        return f"Android {m.group(1)}" if m else "Android"
    if "linux" in ua:
        return "Linux"
    return "Unknown"


def location_from_ip(ip: Optional[str]) -> Optional[str]:
    # TODO: plug in a GeoIP lookup; only loopback is resolved today.
    if ip in ("::1", "127.0.0.1"):
        return "Localhost"
    return None


def parse_device_info(user_agent: Optional[str], ip: Optional[str]) -> DeviceInfo:
    """Derive device type, browser and OS from a User-Agent header."""
    raw = (user_agent or "")[:500]
    ua = raw.lower()

    if _MOBILE.search(ua):
        device_type = "mobile"
    elif _TABLET.search(ua):
        device_type = "tablet"
    elif _DESKTOP.search(ua):
        device_type = "desktop"
    else:
        device_type = "unknown"

    return DeviceInfo(
        ip=ip,
        user_agent=raw,
        device_type=device_type,
        browser=_browser(ua),
        os=_os(ua),
        location=location_from_ip(ip),
    )
