"""Parsing of repository addresses given on the command line."""

from __future__ import annotations

import logging
import re

from exceptions import DiscoveryError

from .models import ParsedAddress

logger = logging.getLogger(__name__)

GITHUB_PREFIX = "github.com/"
VALID_SEGMENT_RE = re.compile(r"^[a-zA-Z0-9._-]+$")


def parse_address(text: str) -> ParsedAddress:
    """Parse ``org/repo[/subpath]``.

    A leading ``github.com/`` is stripped with a warning, as is a trailing slash.

    Raises:
        DiscoveryError: Fewer than two segments, or a segment with illegal characters.
    """
    raw = text.strip()
    if raw.startswith(GITHUB_PREFIX):
        raw = raw[len(GITHUB_PREFIX):]
        logger.warning('Stripped "%s" prefix: use "%s" directly.', GITHUB_PREFIX, raw)
    if raw.endswith("/"):
        raw = raw[:-1]

    segments = raw.split("/")
    if len(segments) < 2:
        raise DiscoveryError(f'Invalid address "{text}": expected at least org/repo (e.g. pipelex/cookbook).')
    for segment in segments:
        if not VALID_SEGMENT_RE.match(segment):
            raise DiscoveryError(
                f'Invalid address segment "{segment}": only alphanumeric, dot, dash, and underscore are allowed.'
            )

    subpath = "/".join(segments[2:]) if len(segments) > 2 else None
    return ParsedAddress(org=segments[0], repo=segments[1], subpath=subpath)
