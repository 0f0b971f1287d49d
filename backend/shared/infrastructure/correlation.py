"""
Log context for HTTP requests and WebSocket connections.

Each HTTP request gets a request id (X-Request-ID, generated when absent)
and each WebSocket connection binds its connection id while its message
loop runs, so every log line can be traced back to one request or socket.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
connection_id_var: ContextVar[str] = ContextVar("connection_id", default="")


def get_request_id() -> str:
    return request_id_var.get()


@contextmanager
def bind_connection(connection_id: str) -> Iterator[None]:
    """
    Attach a WebSocket connection id to log lines emitted inside the block.

    Usage:
        with bind_connection(connection_id):
            await self._message_loop()
    """
    token = connection_id_var.set(connection_id)
    try:
        yield
    finally:
        connection_id_var.reset(token)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Propagate or generate X-Request-ID and echo it on the response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class LogContextFilter:
    """
    Copy the bound request and connection ids onto every log record.

    Installed on the root handler by setup_logging().
    """

    def filter(self, record) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.connection_id = connection_id_var.get() or "-"
        return True
