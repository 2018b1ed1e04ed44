"""Text and payload cleanup applied before anything is serialized to JSON."""

import re
from typing import Any

import numpy as np

# ASCII control characters except \t, \n and \r
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def sanitize_text(value) -> str:
    """Drop invalid UTF-8 sequences and control characters from a string."""
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("utf-8", errors="ignore")
    else:
        # lone surrogates cannot be encoded and would break json.dumps
        value = value.encode("utf-8", errors="ignore").decode("utf-8")
    return _CONTROL_CHARS.sub("", value)


def sanitize_payload(data: Any) -> Any:
    """Recursively sanitize every string inside a request body."""
    if isinstance(data, (str, bytes, bytearray)):
        return sanitize_text(data)
    if isinstance(data, np.ndarray):
        return data.tolist()
    if isinstance(data, np.generic):
        return data.item()
    if isinstance(data, dict):
        return {sanitize_text(k) if isinstance(k, str) else k: sanitize_payload(v)
                for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [sanitize_payload(v) for v in data]
    return data
