"""HTTP over UDP (HTTPU): request and response messages and a client."""

from __future__ import annotations

import ipaddress
import logging
import re
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import SplitResult, urlsplit

LOCAL_ADDRESS_HEADER = "upnpwire-local-address"
"""Header added to each response, holding the local IP it was received on."""

MAX_RESPONSE_BYTES = 2048

_log = logging.getLogger(__name__)

Headers = list[tuple[str, str]]

_VERSION_RX = re.compile(r"HTTP/[0-9]\.[0-9]")
_TOKEN_RX = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")
_STATUS_CODE_RX = re.compile(r"[0-9]{3}")
_DIGITS_RX = re.compile(r"[0-9]+")


def _get_header(headers: Headers, name: str) -> str:
    wanted = name.lower()
    return next((value for key, value in headers if key.lower() == wanted), "")


def _split_host_port(addr: str) -> tuple[str, int]:
    """Split ``host:port`` (IPv6 hosts in brackets) into its parts."""
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"address {addr!r}: missing port in address")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ValueError(f"address {addr!r}: too many colons in address")
    if _DIGITS_RX.fullmatch(port) is None or int(port) > 65535:
        raise ValueError(f"address {addr!r}: invalid port")
    return host, int(port)


def _format_addr(addr: tuple) -> str:
    host, port = addr[0], addr[1]
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


def _read_line(data: bytes, pos: int) -> tuple[bytes, int]:
    end = data.find(b"\n", pos)
    if end < 0:
        raise ValueError("unexpected EOF in HTTP message")
    line = data[pos:end]
    if line.endswith(b"\r"):
        line = line[:-1]
    return line, end + 1


def _parse_head(data: bytes) -> tuple[str, Headers, bytes]:
    """Split a message into its first line, its headers and the rest."""
    first, pos = _read_line(data, 0)
    headers: Headers = []
    while True:
        line, pos = _read_line(data, pos)
        if not line:
            break
        text = line.decode("utf-8", errors="replace")
        if text[0] in " \t":
            if not headers:
                raise ValueError(f"malformed MIME header initial line: {text!r}")
            name, value = headers[-1]
            extra = text.strip(" \t")
            headers[-1] = (name, f"{value} {extra}")
            continue
        name, sep, value = text.partition(":")
        if not sep or _TOKEN_RX.fullmatch(name) is None:
            raise ValueError(f"malformed MIME header line: {text!r}")
        headers.append((name, value.strip(" \t")))
    return first.decode("utf-8", errors="replace"), headers, data[pos:]


def _body(headers: Headers, rest: bytes, read_to_end: bool) -> bytes:
    length = _get_header(headers, "Content-Length").strip()
    if length and _DIGITS_RX.fullmatch(length):
        return rest[: int(length)]
    return rest if read_to_end else b""


@dataclass
class HTTPURequest:
    """An HTTP request carried in a single datagram."""

    method: str = "GET"
    host: str = ""
    uri: str = "/"
    headers: Headers = field(default_factory=list)
    body: bytes = b""
    remote_addr: str = ""

    def header(self, name: str) -> str:
        """First value of the named header, ignoring case; "" if absent."""
        return _get_header(self.headers, name)


@dataclass
class HTTPUResponse:
    """An HTTP response received in a single datagram."""

    status_code: int
    status: str
    proto: str = "HTTP/1.1"
    headers: Headers = field(default_factory=list)
    body: bytes = b""

    def header(self, name: str) -> str:
        """First value of the named header, ignoring case; "" if absent."""
        return _get_header(self.headers, name)

    def add_header(self, name: str, value: str) -> None:
        self.headers.append((name, value))

    def location(self) -> SplitResult:
        """The URL in the Location header."""
        value = self.header("Location")
        if not value:
            raise ValueError("http: no Location header in response")
        if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value):
            raise ValueError(f"invalid control character in URL {value!r}")
        return urlsplit(value)


def format_request(request: HTTPURequest) -> bytes:
    """Encode a request with only its request line and headers, sorted by name."""
    method = request.method or "GET"
    lines = [f"{method} {request.uri or '/'} HTTP/1.1"]
    for name, value in sorted(request.headers, key=lambda item: item[0]):
        flat = value.replace("\r", " ").replace("\n", " ").strip(" \t")
        lines.append(f"{name}: {flat}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")


def parse_response(data: bytes) -> HTTPUResponse:
    """Decode a response datagram."""
    first, headers, rest = _parse_head(data)
    proto, sep, status = first.partition(" ")
    if not sep:
        raise ValueError(f"malformed HTTP response {first!r}")
    if _VERSION_RX.fullmatch(proto) is None:
        raise ValueError(f"malformed HTTP version {proto!r}")
    status = status.lstrip(" ")
    code = status.partition(" ")[0]
    if _STATUS_CODE_RX.fullmatch(code) is None:
        raise ValueError(f"malformed HTTP status code {code!r}")
    return HTTPUResponse(int(code), status, proto, headers, _body(headers, rest, True))


class HTTPUClient:
    """Sends HTTPU requests from one UDP socket and gathers the responses."""

    def __init__(self, sock: Optional[socket.socket] = None) -> None:
        if sock is None:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.bind(("", 0))
        self._sock = sock
        self._lock = threading.Lock()

    @classmethod
    def for_address(cls, addr: str) -> "HTTPUClient":
        """A client sending from the given local IP address, on a random port."""
        try:
            ip = ipaddress.ip_address(addr)
        except ValueError:
            raise ValueError("Invalid listening address") from None
        family = socket.AF_INET6 if ip.version == 6 else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_DGRAM)
        try:
            sock.bind((str(ip), 0))
        except OSError:
            sock.close()
            raise
        return cls(sock)

    def close(self) -> None:
        with self._lock:
            self._sock.close()

    def __enter__(self) -> "HTTPUClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def do(
        self, request: HTTPURequest, timeout: float, num_sends: int
    ) -> list[HTTPUResponse]:
        """Send the request ``num_sends`` times and collect responses until
        ``timeout`` seconds have passed.

        Only failing to send raises; responses that cannot be parsed are
        dropped.
        """
        if timeout <= 0:
            raise ValueError("httpu: timeout must be positive")
        with self._lock:
            deadline = time.monotonic() + timeout
            payload = format_request(request)
            host, port = _split_host_port(request.host)
            dest = socket.getaddrinfo(
                host or None, port, self._sock.family, socket.SOCK_DGRAM
            )[0][4]

            for _ in range(num_sends):
                sent = self._sock.sendto(payload, dest)
                if sent < len(payload):
                    raise OSError(
                        f"httpu: wrote {sent} bytes rather than full "
                        f"{len(payload)} in request"
                    )
                time.sleep(0.005)

            local_ip = self._sock.getsockname()[0]
            responses: list[HTTPUResponse] = []
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._sock.settimeout(remaining)
                try:
                    data, _ = self._sock.recvfrom(MAX_RESPONSE_BYTES)
                except socket.timeout:
                    break
                try:
                    response = parse_response(data)
                except ValueError as exc:
                    _log.warning("httpu: error while parsing response: %s", exc)
                    continue
                response.add_header(LOCAL_ADDRESS_HEADER, local_ip)
                responses.append(response)
            return responses