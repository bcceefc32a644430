import re

MOBILE_UA_MARKERS = ("android", "iphone", "ipad", "ipod", "mobile")
BOT_UA_MARKERS = (
    "bot",
    "crawler",
    "spider",
    "scraper",
    "headless",
    "phantom",
    "selenium",
    "puppeteer",
    "playwright",
)
STRONG_BOT_UA_MARKERS = (
    "curl/",
    "wget/",
    "python-requests",
    "go-http-client",
    "httpclient",
)

_BOT_UA_RE = re.compile("|".join(BOT_UA_MARKERS), re.IGNORECASE)


def contains_any(value: str, markers: tuple[str, ...]) -> bool:
    return any(marker in value for marker in markers)


def has_mobile_ua(ua: str) -> bool:
    return contains_any(ua.lower(), MOBILE_UA_MARKERS)


def is_bot_like_ua(ua: str) -> bool:
    if not ua:
        return False
    return bool(_BOT_UA_RE.search(ua)) or contains_any(ua.lower(), STRONG_BOT_UA_MARKERS)


def matches_bot_pattern(ua: str) -> bool:
    return bool(ua) and bool(_BOT_UA_RE.search(ua))


def platform_family_from_user_agent(ua: str) -> str | None:
    marker = ua.lower()
    if "android" in marker:
        return "android"
    if "iphone" in marker or "ipad" in marker or "ipod" in marker:
        return "apple"
    if "windows" in marker:
        return "windows"
    if "macintosh" in marker:
        return "apple"
    if "cros" in marker:
        return "chromeos"
    if "linux" in marker:
        return "linux"
    return None


def platform_family_from_client_hints(platform: str) -> str | None:
    marker = platform.strip().strip('"').lower()
    if not marker:
        return None
    if marker == "windows":
        return "windows"
    if marker == "android":
        return "android"
    if marker in {"ios", "macos"}:
        return "apple"
    if marker == "linux":
        return "linux"
    if marker in {"chrome os", "chromeos", "cros"}:
        return "chromeos"
    return None


def platform_family_from_navigator(platform: str) -> str | None:
    marker = platform.lower()
    if not marker:
        return None
    if marker.startswith("win"):
        return "windows"
    if "android" in marker:
        return "android"
    if "cros" in marker:
        return "chromeos"
    if "linux" in marker or "x11" in marker:
        return "linux"
    if any(item in marker for item in ("mac", "iphone", "ipad", "ipod")):
        return "apple"
    return None


__all__ = (
    "BOT_UA_MARKERS",
    "MOBILE_UA_MARKERS",
    "STRONG_BOT_UA_MARKERS",
    "contains_any",
    "has_mobile_ua",
    "is_bot_like_ua",
    "matches_bot_pattern",
    "platform_family_from_client_hints",
    "platform_family_from_navigator",
    "platform_family_from_user_agent",
)
