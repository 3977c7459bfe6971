import logging
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from accessprof.capture.observation import Observation
from accessprof.capture.store import LogStore, default_store
from accessprof.middleware.endpoint import parse_content_length, serve_report, serve_reset

logger = logging.getLogger(__name__)

_REASONS = {200: "200 OK", 500: "500 Internal Server Error"}


class _RecordingIterable:
    """Wraps a WSGI response, counting body bytes and calling ``on_close`` once the server closes it."""

    def __init__(self, iterable: Iterable[bytes], sent: list[int], on_close: Callable[[], None]) -> None:
        self._iterable = iterable
        self._sent = sent
        self._on_close = on_close

    def __iter__(self):
        for chunk in self._iterable:
            self._sent[0] += len(chunk)
            yield chunk

    def close(self) -> None:
        try:
            close = getattr(self._iterable, "close", None)
            if close is not None:
                close()
        finally:
            self._on_close()


class AccessProfMiddleware:
    """WSGI middleware for Flask and Django applications."""

    def __init__(
        self,
        wsgi_app,
        *,
        store: LogStore | None = None,
        report_path: str | None = None,
    ) -> None:
        self.wsgi_app = wsgi_app
        self.store = store or default_store()
        self.report_path = report_path

    def __call__(self, environ: dict, start_response):
        path = environ.get("PATH_INFO") or "/"
        method = environ.get("REQUEST_METHOD", "GET").upper()

        if self.report_path and path == self.report_path:
            if method == "GET":
                return self._respond(start_response, *serve_report(
                    self.store, self.report_path, environ.get("QUERY_STRING", "")
                ))
            if method == "DELETE":
                return self._respond(start_response, *serve_reset(self.store))

        accessed_at = datetime.now(timezone.utc)
        start = time.perf_counter_ns()
        status_code: list[int] = [0]
        sent: list[int] = [0]

        def capturing_start_response(status: str, headers, exc_info=None):
            try:
                status_code[0] = int(status.split(" ", 1)[0])
            except (ValueError, IndexError):
                pass
            write = start_response(status, headers, exc_info)

            def counting_write(data: bytes):
                sent[0] += len(data)
                return write(data)

            return counting_write

        def record() -> None:
            try:
                self.store.record(Observation(
                    method=method,
                    path=path,
                    request_body_size=parse_content_length(environ.get("CONTENT_LENGTH")),
                    status=status_code[0],
                    response_body_size=sent[0],
                    response_time_ns=time.perf_counter_ns() - start,
                    accessed_at=accessed_at,
                ))
            except Exception:
                logger.warning("accessprof: failed to record observation", exc_info=True)

        response = self.wsgi_app(environ, capturing_start_response)
        return _RecordingIterable(response, sent, record)

    @staticmethod
    def _respond(start_response, status: int, content_type: str, body: bytes) -> list[bytes]:
        start_response(_REASONS[status], [
            ("Content-Type", content_type),
            ("Content-Length", str(len(body))),
        ])
        return [body]
