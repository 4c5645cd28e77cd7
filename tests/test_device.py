from ims_backend.core.device import parse_device_info


def test_desktop_chrome_on_windows():
    info = parse_device_info(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36",
        "127.0.0.1",
    )
    assert (info.device_type, info.browser, info.os) == ("desktop", "Chrome", "Windows 10/11")
    assert info.location == "Localhost"


def test_iphone_safari():
    info = parse_device_info(
        "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
        "Version/17.1 Mobile/15E148 Safari/604.1",
        "203.0.113.9",
    )
    assert (info.device_type, info.browser, info.os) == ("mobile", "Safari", "iOS 17.1")
    assert info.location is None


def test_edge_and_android():
    info = parse_device_info(
        "Mozilla/5.0 (Linux; Android 14) AppleWebKit/537.36 Chrome/120.0 Mobile Safari/537.36 EdgA/120.0",
        None,
    )
    assert info.device_type == "mobile"
    assert info.os == "Android 14"


def test_missing_user_agent():
    info = parse_device_info(None, None)
    assert (info.device_type, info.browser, info.os) == ("unknown", "Unknown", "Unknown")
