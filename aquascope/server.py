"""Local HTTP server that runs Aquascope analyses on submitted programs."""

from __future__ import annotations

import argparse
import ipaddress
import json
import logging
import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from .container import Container, ContainerError, ServerResponse, SingleFileRequest

log = logging.getLogger(__name__)

DEFAULT_ADDRESS = "127.0.0.1"
DEFAULT_PORT = 8008

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "content-type",
    "Access-Control-Allow-Methods": "GET,POST",
}

Response = tuple[int, str, bytes]


@dataclass
class Config:
    address: str = DEFAULT_ADDRESS
    port: int = DEFAULT_PORT
    no_docker: bool = field(default=True)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        """Read the address and port from AQUASCOPE_SERVER_* variables."""
        env = os.environ if environ is None else environ
        address = env.get("AQUASCOPE_SERVER_ADDRESS", DEFAULT_ADDRESS)
        port = DEFAULT_PORT
        raw = env.get("AQUASCOPE_SERVER_PORT")
        if raw is not None and raw.isdigit() and int(raw) <= 0xFFFF:
            port = int(raw)
        return cls(address=address, port=port, no_docker=True)

    def socket_address(self) -> tuple[str, int]:
        try:
            address = ipaddress.ip_address(self.address)
        except ValueError as error:
            raise ValueError("Invalid address") from error
        return str(address), self.port


class ServeError(RuntimeError):
    """An endpoint failed; reported to the client as a server error."""


Operation = Callable[[Container, SingleFileRequest], ServerResponse]


def _with_container(request: SingleFileRequest, operation: Operation, label: str) -> ServerResponse:
    try:
        container = Container.create()
    except ContainerError as error:
        raise ServeError(f"Creating the container failed {error}") from error
    try:
        return operation(container, request)
    except ContainerError as error:
        raise ServeError(f"{label} {error}") from error
    finally:
        try:
            container.cleanup()
        except OSError as error:
            log.warning("Error cleaning up container: %r", error)


_ENDPOINTS: dict[str, tuple[Operation, str]] = {
    "/permissions": (Container.permissions, "Running permissions analysis failed "),
    "/interpreter": (Container.interpreter, "Running interpreter failed"),
}


def _json(value: object) -> Response:
    return HTTPStatus.OK, "application/json", json.dumps(value).encode("utf-8")


def _text(status: int, text: str) -> Response:
    return status, "text/plain; charset=utf-8", text.encode("utf-8")


def handle_request(method: str, path: str, body: bytes = b"") -> Response:
    """Route a request, returning (status, content type, body)."""
    route = path.split("?", 1)[0]
    if method == "OPTIONS":
        return _text(HTTPStatus.OK, "")

    if route == "/hi":
        if method != "GET":
            return _text(HTTPStatus.METHOD_NOT_ALLOWED, "")
        log.info("Received Message")
        return _text(HTTPStatus.OK, "HELLO!")

    if route in _ENDPOINTS:
        if method != "POST":
            return _text(HTTPStatus.METHOD_NOT_ALLOWED, "")
        log.debug("Received request for %s", route)
        try:
            request = SingleFileRequest.from_json(json.loads(body.decode("utf-8")))
        except ValueError as error:
            return _json({"error": f"Unable to deserialize request: {error}"})
        operation, label = _ENDPOINTS[route]
        try:
            response = _with_container(request, operation, label)
        except ServeError as error:
            return _text(HTTPStatus.INTERNAL_SERVER_ERROR, str(error))
        log.debug("returning JSON %r", response)
        return _json(response.to_json())

    return _text(HTTPStatus.NOT_FOUND, f"No route {path}")


class _Handler(BaseHTTPRequestHandler):
    def _dispatch(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        status, content_type, payload = handle_request(self.command, self.path, body)
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(payload)))
        for name, value in CORS_HEADERS.items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(payload)

    do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = do_OPTIONS = _dispatch

    def log_message(self, format: str, *args: object) -> None:
        log.debug(format, *args)


def make_server(config: Config) -> ThreadingHTTPServer:
    """Bind a threaded HTTP server to the configured address."""
    return ThreadingHTTPServer(config.socket_address(), _Handler)


def serve(config: Config) -> None:
    with make_server(config) as server:
        log.info("Serving requests on %s:%s", config.address, config.port)
        server.serve_forever()


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="aquascope-serve",
        description="Serve Aquascope analyses over HTTP for local debugging",
    )
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    config = Config.from_env()
    log.warning(
        "The Aquascope server is only used for local debugging. "
        "Requests will be processed on your machine!"
    )
    try:
        serve(config)
    except KeyboardInterrupt:
        pass
    return 0