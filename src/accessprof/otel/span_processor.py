import logging
from datetime import datetime, timezone

from opentelemetry.sdk.trace import ReadableSpan, SpanProcessor
from opentelemetry.trace import SpanKind

from accessprof.capture.observation import Observation
from accessprof.capture.store import LogStore, default_store

logger = logging.getLogger(__name__)

# Semantic convention keys — support both old (v1.x) and new (v1.21+) conventions
_METHOD_KEYS = ("http.request.method", "http.method")
_STATUS_KEYS = ("http.response.status_code", "http.status_code")
_RESPONSE_SIZE_KEYS = ("http.response.body.size", "http.response_content_length")
_REQUEST_SIZE_KEYS = ("http.request.body.size", "http.request_content_length")
_PATH_KEY = "url.path"
_TARGET_KEY = "http.target"


def _extract_path(attributes: dict) -> str:
    """Extract the raw request path, handling both semconv versions."""
    path = attributes.get(_PATH_KEY)
    if path:
        return str(path)

    # Old semconv: http.target is the full path+query (e.g. "/api/orders?page=1")
    target = attributes.get(_TARGET_KEY, "")
    return str(target).split("?", 1)[0] if target else "/"


def _get_attr(attributes: dict, *keys: str) -> str | None:
    """Return the first value found among the given attribute keys."""
    for key in keys:
        value = attributes.get(key)
        if value is not None:
            return str(value)
    return None


def _get_int(attributes: dict, keys: tuple[str, ...], default: int) -> int:
    raw = _get_attr(attributes, *keys)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class AccessProfSpanProcessor(SpanProcessor):
    """
    OpenTelemetry SpanProcessor that records one observation per HTTP server span.

    Use this instead of the HTTP middleware when your service already has
    OpenTelemetry instrumentation in place.

    Usage::

        from opentelemetry.sdk.trace import TracerProvider
        from accessprof.otel import AccessProfSpanProcessor

        provider = TracerProvider()
        provider.add_span_processor(AccessProfSpanProcessor(store))
    """

    def __init__(self, store: LogStore | None = None) -> None:
        self.store = store or default_store()

    def on_start(self, span, parent_context=None) -> None:
        pass

    def on_end(self, span: ReadableSpan) -> None:
        try:
            self._process(span)
        except Exception:
            logger.warning("accessprof: failed to process span", exc_info=True)

    def shutdown(self) -> None:
        self.force_flush()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        try:
            self.store.flush()
        except Exception:
            logger.warning("accessprof: failed to flush observations", exc_info=True)
            return False
        return True

    def _process(self, span: ReadableSpan) -> None:
        if span.kind != SpanKind.SERVER:
            return

        attributes = dict(span.attributes or {})

        # Only HTTP spans carry a method attribute
        method = _get_attr(attributes, *_METHOD_KEYS)
        if not method:
            return

        start_time = span.start_time or span.end_time or 0
        end_time = span.end_time or start_time

        self.store.record(Observation(
            method=method.upper(),
            path=_extract_path(attributes),
            request_body_size=_get_int(attributes, _REQUEST_SIZE_KEYS, -1),
            status=_get_int(attributes, _STATUS_KEYS, 0),
            response_body_size=_get_int(attributes, _RESPONSE_SIZE_KEYS, 0),
            response_time_ns=max(0, end_time - start_time),
            accessed_at=datetime.fromtimestamp(start_time / 1e9, tz=timezone.utc),
        ))
