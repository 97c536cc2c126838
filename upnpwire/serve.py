"""Receiving HTTPU requests and passing them to a handler."""

from __future__ import annotations

import logging
import re
import socket
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from upnpwire.httpu import (
    _TOKEN_RX,
    _VERSION_RX,
    HTTPURequest,
    _body,
    _format_addr,
    _get_header,
    _parse_head,
    _split_host_port,
)

DEFAULT_MAX_MESSAGE_BYTES = 2048

# Some routers put a trailing space after "HTTP/1.1".
_TRAILING_WS_RX = re.compile(rb" +\r\n")

_log = logging.getLogger(__name__)


def parse_request(data: bytes, remote_addr: str = "") -> HTTPURequest:
    """Decode a request datagram received from ``remote_addr``."""
    data = _TRAILING_WS_RX.sub(b"\r\n", data)
    first, headers, rest = _parse_head(data)
    parts = first.split(" ", 2)
    if len(parts) != 3:
        raise ValueError(f"malformed HTTP request {first!r}")
    method, uri, proto = parts
    if _TOKEN_RX.fullmatch(method) is None:
        raise ValueError(f"invalid method {method!r}")
    if not uri:
        raise ValueError(f"malformed HTTP request {first!r}")
    if _VERSION_RX.fullmatch(proto) is None:
        raise ValueError(f"malformed HTTP version {proto!r}")
    return HTTPURequest(
        method=method,
        host=_get_header(headers, "Host"),
        uri=uri,
        headers=headers,
        body=_body(headers, rest, False),
        remote_addr=remote_addr,
    )


def _dispatcher(handler: Any) -> Callable[[HTTPURequest], None]:
    serve_message = getattr(handler, "serve_message", None)
    return serve_message if callable(serve_message) else handler


@dataclass
class Server:
    """Listens for HTTPU messages and hands each one to ``handler``.

    ``handler`` is a callable taking the request, or an object with a
    ``serve_message`` method. ``interface`` is the local IP address of the
    interface to join the multicast group on; None means the default.
    """

    addr: str = ""
    multicast: bool = False
    interface: Optional[str] = None
    handler: Any = None
    max_message_bytes: int = 0

    def listen_and_serve(self) -> None:
        """Bind to ``addr`` (joining its multicast group if asked) and serve."""
        host, port = _split_host_port(self.addr)
        if self.multicast:
            sock = self._multicast_socket(host, port)
        else:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                sock.bind((host, port))
            except OSError:
                sock.close()
                raise
        with sock:
            self.serve(sock)

    def _multicast_socket(self, host: str, port: int) -> socket.socket:
        group = socket.inet_aton(socket.gethostbyname(host))
        iface = socket.inet_aton(self.interface or "0.0.0.0")
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("", port))
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, group + iface)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 0)
        except OSError:
            sock.close()
            raise
        return sock

    def serve(self, sock: socket.socket) -> None:
        """Serve messages from ``sock`` until receiving from it fails."""
        size = self.max_message_bytes or DEFAULT_MAX_MESSAGE_BYTES
        dispatch = _dispatcher(self.handler)
        while True:
            data, peer = sock.recvfrom(size)
            threading.Thread(
                target=self._handle, args=(dispatch, data, peer), daemon=True
            ).start()

    @staticmethod
    def _handle(dispatch: Callable[[HTTPURequest], None], data: bytes, peer) -> None:
        try:
            request = parse_request(data, _format_addr(peer))
        except ValueError as exc:
            _log.warning("httpu: Failed to parse request: %s", exc)
            return
        dispatch(request)


def serve(sock: socket.socket, handler: Any) -> None:
    """Serve messages received on ``sock`` to ``handler``."""
    Server(handler=handler, max_message_bytes=DEFAULT_MAX_MESSAGE_BYTES).serve(sock)