import logging
import re
from typing import NamedTuple, Optional, Sequence, Tuple

from config import ConfigError, DEFAULT_METHOD

logger = logging.getLogger(__name__)

# RFC 7230 token characters
_METHOD_RE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


class RequestTemplate(NamedTuple):
    """Built once per run and sent unchanged on every attempt."""
    url: str
    method: str
    headers: Tuple[Tuple[str, str], ...] = ()
    body: Optional[bytes] = None


def parse_header(raw: str) -> Tuple[str, str]:
    """Splits 'Name: value' on the first colon."""
    if ":" not in raw:
        raise ConfigError(f"invalid header format '{raw}' (expected 'Name: value')")
    name, value = raw.split(":", 1)
    name = name.strip()
    value = value.strip()
    if not name:
        raise ConfigError(f"empty header name in '{raw}'")
    if not value:
        raise ConfigError(f"empty header value in '{raw}'")
    if any(c.isspace() for c in name):
        raise ConfigError(f"header name must not contain whitespace: '{name}'")
    return name, value


def read_body_file(path: str) -> bytes:
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as e:
        raise ConfigError(f"cannot read body file '{path}': {e}") from e


def build_request_template(url: str, method: str = DEFAULT_METHOD,
                           headers: Sequence[str] = (),
                           body: Optional[str] = None,
                           body_file: Optional[str] = None) -> RequestTemplate:
    # body_file overrides body when both are set
    payload: Optional[bytes] = None
    if body_file:
        payload = read_body_file(body_file)
        if body is not None:
            logger.warning(f"Both body and body file given; using contents of {body_file}")
    elif body is not None:
        payload = body.encode('utf-8')

    method = (method or "").strip().upper()
    if not _METHOD_RE.fullmatch(method):
        raise ConfigError(f"invalid HTTP method '{method}'")

    return RequestTemplate(
        url=url,
        method=method,
        headers=tuple(parse_header(h) for h in headers),
        body=payload,
    )
