import json
import logging
from urllib.parse import parse_qs

from accessprof.capture.store import LogStore
from accessprof.errors import AccessProfError, PatternError
from accessprof.generation.formatter import render_html

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPE = "text/html; charset=utf-8"
JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


def parse_patterns(query_string: str) -> list[str]:
    """Read the comma-separated ``agg`` query parameter."""
    values = parse_qs(query_string).get("agg", [])
    if not values:
        return []
    return [p for p in values[0].split(",") if p]


def parse_content_length(value: str | None) -> int:
    """Request body size from a Content-Length header, -1 when unknown."""
    try:
        return int(value) if value else -1
    except ValueError:
        return -1


def serve_report(store: LogStore, report_path: str, query_string: str) -> tuple[int, str, bytes]:
    """Build the HTML report page. Returns (status, content type, body)."""
    try:
        report = store.report(parse_patterns(query_string))
    except PatternError as e:
        return 500, JSON_CONTENT_TYPE, json.dumps({"error": str(e)}).encode()
    except AccessProfError as e:
        logger.warning("accessprof: failed to build report", exc_info=True)
        return 500, TEXT_CONTENT_TYPE, str(e).encode()
    return 200, HTML_CONTENT_TYPE, render_html(report, report_path).encode()


def serve_reset(store: LogStore) -> tuple[int, str, bytes]:
    store.reset()
    return 200, TEXT_CONTENT_TYPE, b""
