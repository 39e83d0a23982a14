import re

_WHITESPACE_RUN = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Collapse every run of whitespace to a single space and trim the ends."""
    if not text:
        return ""
    return _WHITESPACE_RUN.sub(" ", text).strip()
