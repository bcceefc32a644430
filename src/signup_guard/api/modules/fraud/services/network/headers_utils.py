STANDARD_HEADERS = ("accept", "accept-language", "accept-encoding")


def parse_accept_language(header: str | None) -> list[str]:
    if not header:
        return []
    languages: list[str] = []
    for token in header.split(","):
        value = token.strip()
        if not value:
            continue
        language = value.split(";", 1)[0].strip()
        if language:
            languages.append(language)
    return languages


def extract_primary_language(accept_language: str | None) -> str | None:
    languages = parse_accept_language(accept_language)
    return languages[0].lower() if languages else None


def accepts_gzip(accept_encoding: str | None) -> bool:
    if not accept_encoding:
        return False
    tokens = (item.split(";", 1)[0].strip().lower() for item in accept_encoding.split(","))
    return "gzip" in tokens


def parse_structured_flag(value: str | None) -> bool | None:
    """``?1``/``?0`` structured header booleans (sec-ch-ua-mobile)."""
    if value is None:
        return None
    token = value.strip()
    if token == "?1":
        return True
    if token == "?0":
        return False
    return None


def unquote_header(value: str | None) -> str:
    if not value:
        return ""
    return value.strip().strip('"')


def missing_standard_headers(headers: dict[str, str]) -> list[str]:
    return [name for name in STANDARD_HEADERS if not headers.get(name)]


__all__ = (
    "STANDARD_HEADERS",
    "accepts_gzip",
    "extract_primary_language",
    "missing_standard_headers",
    "parse_accept_language",
    "parse_structured_flag",
    "unquote_header",
)
