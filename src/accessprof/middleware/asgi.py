import asyncio
import logging
import time
from datetime import datetime, timezone

from accessprof.capture.observation import Observation
from accessprof.capture.store import LogStore, default_store
from accessprof.middleware.endpoint import parse_content_length, serve_report, serve_reset

logger = logging.getLogger(__name__)


class AccessProfMiddleware:
    """ASGI middleware for FastAPI and Starlette applications."""

    def __init__(
        self,
        app,
        *,
        store: LogStore | None = None,
        report_path: str | None = None,
    ) -> None:
        self.app = app
        self.store = store or default_store()
        self.report_path = report_path

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path") or "/"
        method = scope.get("method", "GET").upper()

        if self.report_path and path == self.report_path:
            if method == "GET":
                query_string = scope.get("query_string", b"").decode("latin-1")
                # File reads and the flush lock stay off the event loop
                response = await asyncio.to_thread(serve_report, self.store, self.report_path, query_string)
                await self._respond(send, *response)
                return
            if method == "DELETE":
                await self._respond(send, *serve_reset(self.store))
                return

        accessed_at = datetime.now(timezone.utc)
        start = time.perf_counter_ns()
        status_code: list[int] = [0]
        sent: list[int] = [0]

        async def capturing_send(message):
            if message["type"] == "http.response.start":
                status_code[0] = message["status"]
            elif message["type"] == "http.response.body":
                sent[0] += len(message.get("body", b""))
            await send(message)

        await self.app(scope, receive, capturing_send)

        try:
            headers = {
                k.decode("latin-1").lower(): v.decode("latin-1")
                for k, v in scope.get("headers", [])
            }
            self.store.record(Observation(
                method=method,
                path=path,
                request_body_size=parse_content_length(headers.get("content-length")),
                status=status_code[0],
                response_body_size=sent[0],
                response_time_ns=time.perf_counter_ns() - start,
                accessed_at=accessed_at,
            ))
        except Exception:
            logger.warning("accessprof: failed to record observation", exc_info=True)

    @staticmethod
    async def _respond(send, status: int, content_type: str, body: bytes) -> None:
        await send({
            "type": "http.response.start",
            "status": status,
            "headers": [
                (b"content-type", content_type.encode("latin-1")),
                (b"content-length", str(len(body)).encode("latin-1")),
            ],
        })
        await send({"type": "http.response.body", "body": body})
