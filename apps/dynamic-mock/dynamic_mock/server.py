"""Threaded HTTP transport for the dynamic mock server."""

from __future__ import annotations

import socketserver
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any

import structlog

from .dispatcher import MAX_BODY_BYTES, MockReply, RequestDispatcher
from .models import is_valid_header
from .routes import RouteTable

LOGGER = structlog.get_logger("dynamic_mock.server")


class ThreadedHTTPServer(socketserver.ThreadingMixIn, HTTPServer):
    daemon_threads = True


class DynamicMockServer:
    """Serves a ``RequestDispatcher`` over HTTP from a background thread."""

    def __init__(self, dispatcher: RequestDispatcher, host: str = "0.0.0.0", port: int = 8080) -> None:
        self._dispatcher = dispatcher
        self._host = host
        self._port = port
        self._httpd: ThreadedHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._logger = LOGGER

    @property
    def server_address(self) -> tuple[str, int]:
        if self._httpd is None:
            return self._host, self._port
        host, port = self._httpd.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        self._logger.info("server_starting", host=self._host, port=self._port)
        httpd = ThreadedHTTPServer((self._host, self._port), _build_handler(self._dispatcher))
        self._httpd = httpd
        self._thread = threading.Thread(target=httpd.serve_forever, daemon=True)
        self._thread.start()
        self._ready.set()
        host, port = self.server_address
        self._logger = self._logger.bind(host=host, port=port)
        self._logger.info("server_started", routes=len(self._dispatcher.table))

    def stop(self) -> None:
        if not self._httpd:
            return
        self._logger.info("server_stopping")
        try:
            self._httpd.shutdown()
            self._httpd.server_close()
        finally:
            if self._thread:
                self._thread.join(timeout=2)
            self._httpd = None
            self._ready.clear()
        self._logger.info("server_stopped")

    def wait_until_ready(self, timeout: float = 1.0) -> bool:
        return self._ready.wait(timeout=timeout)

    def serve_until_interrupted(self) -> None:
        """Start serving and block until Ctrl+C."""

        self.start()
        try:
            while self._thread and self._thread.is_alive():
                self._thread.join(timeout=0.5)
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def __enter__(self) -> "DynamicMockServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


def _build_handler(dispatcher: RequestDispatcher) -> type[BaseHTTPRequestHandler]:
    class Handler(BaseHTTPRequestHandler):
        def log_message(self, format: str, *args: Any) -> None:  # pragma: no cover - avoid stderr
            LOGGER.debug(
                "http_trace",
                client_ip=self.client_address[0],
                message=format % args,
            )

        def do_GET(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler requirement)
            self._handle()

        def do_POST(self) -> None:  # noqa: N802
            self._handle()

        def do_PUT(self) -> None:  # noqa: N802
            self._handle()

        def do_DELETE(self) -> None:  # noqa: N802
            self._handle()

        def do_PATCH(self) -> None:  # noqa: N802
            self._handle()

        def do_HEAD(self) -> None:  # noqa: N802
            self._handle(head_only=True)

        def do_OPTIONS(self) -> None:  # noqa: N802
            self._handle()

        def _handle(self, *, head_only: bool = False) -> None:
            client_ip = self.client_address[0]
            path = self.path.split("?", 1)[0]
            request_logger = LOGGER.bind(client_ip=client_ip, method=self.command, path=path)
            try:
                reply = self._reject_body() or self._dispatch(client_ip, request_logger)
            except Exception:
                request_logger.exception("request_failed")
                reply = MockReply.json(HTTPStatus.INTERNAL_SERVER_ERROR, {"error": "Internal server error"})
            try:
                self._write(reply, head_only=head_only)
            except OSError:
                request_logger.warning("response_write_failed", status=reply.status)
                return
            request_logger.info("request_served", status=reply.status, bytes=len(reply.body))

        def _reject_body(self) -> MockReply | None:
            """Refuse unusable or oversized bodies before reading them."""

            raw = self.headers.get("Content-Length")
            if raw is None:
                return None
            try:
                length = int(raw)
            except ValueError:
                length = -1
            if length < 0:
                self.close_connection = True
                return MockReply.json(HTTPStatus.BAD_REQUEST, {"error": "Invalid Content-Length"})
            if length > MAX_BODY_BYTES:
                self.close_connection = True
                return MockReply.json(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, {"error": "Payload too large"})
            return None

        def _dispatch(self, client_ip: str, request_logger: Any) -> MockReply:
            body = self.rfile.read(int(self.headers.get("Content-Length") or 0))
            request_logger.info("request_received", content_length=len(body))
            return dispatcher.dispatch(
                method=self.command,
                path=self.path,
                client_id=client_ip,
                headers={key: value for key, value in self.headers.items()},
                body=body,
            )

        def _write(self, reply: MockReply, *, head_only: bool) -> None:
            self.send_response(reply.status)
            for key, value in reply.headers.items():
                if key.lower() == "content-length":
                    continue
                if not is_valid_header(key, value):
                    LOGGER.warning("header_dropped", header=key)
                    continue
                self.send_header(key, value)
            self.send_header("Content-Length", str(len(reply.body)))
            self.end_headers()
            if not head_only:
                self.wfile.write(reply.body)

    return Handler


def server_console_summary(table: RouteTable, host: str, port: int) -> list[str]:
    header = f"[dynamic-mock] listening on {host}:{port}"
    route_lines = ["    routes:"]
    described = [f"{item.method} {item.path} -> {item.status}" for item in table.list()]
    if described:
        route_lines.extend(f"      - {description}" for description in described)
    else:
        route_lines.append("      (no routes registered)")
    return [header, *route_lines]
