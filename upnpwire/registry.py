"""A registry of devices and services kept up to date from SSDP NOTIFY messages."""

from __future__ import annotations

import enum
import logging
import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from urllib.parse import SplitResult, urlsplit

from upnpwire.httpu import HTTPURequest, _get_header
from upnpwire.serve import Server
from upnpwire.ssdp import (
    METHOD_NOTIFY,
    NTS_ALIVE,
    NTS_BYEBYE,
    NTS_UPDATE,
    SSDP_SEARCH_PORT,
    SSDP_UDP4_ADDR,
)

MAX_EXPIRY_TIME_SECONDS = 24 * 60 * 60

_MAX_AGE_RX = re.compile(r"max-age= *([0-9]+)")
_SIGNED_RX = re.compile(r"[+-]?[0-9]+")
_INT16_MAX = 2**15 - 1

_log = logging.getLogger(__name__)

Listener = Callable[["Update"], None]


class EventType(enum.IntEnum):
    ALIVE = 0
    UPDATE = 1
    BYEBYE = 2

    def __str__(self) -> str:
        return {
            EventType.ALIVE: "EventAlive",
            EventType.UPDATE: "EventUpdate",
            EventType.BYEBYE: "EventByeBye",
        }[self]


@dataclass(frozen=True)
class Entry:
    """What is known about one announced device or service."""

    remote_addr: str
    usn: str
    nt: str
    server: str
    host: str
    location: SplitResult
    # -1 when the device did not send them.
    boot_id: int
    config_id: int
    search_port: int
    last_update: datetime
    cache_expiry: datetime


@dataclass(frozen=True)
class Update:
    """A change to the registry; ``entry`` is None for a bye-bye of an unknown USN."""

    usn: str
    event_type: EventType
    entry: Optional[Entry]


def parse_cache_control_max_age(value: str) -> timedelta:
    """The max-age of a CACHE-CONTROL header value."""
    match = _MAX_AGE_RX.search(value)
    if match is None:
        raise ValueError(
            f"did not find exactly one max-age in cache control header: {value!r}"
        )
    seconds = int(match.group(1))
    if seconds > _INT16_MAX:
        raise ValueError(f"max-age {match.group(1)!r}: value out of range")
    if seconds < 1 or seconds > MAX_EXPIRY_TIME_SECONDS:
        raise ValueError(f"rejecting bad expiry time of {seconds} seconds")
    return timedelta(seconds=seconds)


def parse_upnp_int_header(
    headers: Iterable[tuple[str, str]], name: str, default: int
) -> int:
    """Parse a 32-bit integer header such as BOOTID.UPNP.ORG.

    Returns ``default`` when the header is missing or empty.
    """
    text = _get_header(list(headers), name)
    if not text:
        return default
    if _SIGNED_RX.fullmatch(text) is None:
        raise ValueError(f"ssdp: could not parse header {name}: invalid syntax {text!r}")
    value = int(text)
    if not -(2**31) <= value < 2**31:
        raise ValueError(f"ssdp: could not parse header {name}: {text!r} out of range")
    return value


def entry_from_request(request: HTTPURequest) -> Entry:
    """Build an entry from a NOTIFY request."""
    now = datetime.now(timezone.utc)
    try:
        expiry = parse_cache_control_max_age(request.header("CACHE-CONTROL"))
    except ValueError as exc:
        raise ValueError(f"ssdp: error parsing CACHE-CONTROL max age: {exc}") from exc

    location_text = request.header("LOCATION")
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in location_text):
        raise ValueError(
            f"ssdp: error parsing entry Location URL: invalid control character "
            f"in {location_text!r}"
        )
    try:
        location = urlsplit(location_text)
    except ValueError as exc:
        raise ValueError(f"ssdp: error parsing entry Location URL: {exc}") from exc

    boot_id = parse_upnp_int_header(request.headers, "BOOTID.UPNP.ORG", -1)
    config_id = parse_upnp_int_header(request.headers, "CONFIGID.UPNP.ORG", -1)
    search_port = parse_upnp_int_header(
        request.headers, "SEARCHPORT.UPNP.ORG", SSDP_SEARCH_PORT
    )
    if not 1 <= search_port <= 65535:
        raise ValueError(f"ssdp: search port {search_port} is out of range")

    return Entry(
        remote_addr=request.remote_addr,
        usn=request.header("USN"),
        nt=request.header("NT"),
        server=request.header("SERVER"),
        host=request.header("HOST"),
        location=location,
        boot_id=boot_id,
        config_id=config_id,
        search_port=search_port,
        last_update=now,
        cache_expiry=now + expiry,
    )


class Registry:
    """Known devices and services, by USN, maintained from NOTIFY messages.

    Listeners are callables that receive each ``Update``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_usn: dict[str, Entry] = {}
        self._listeners_lock = threading.Lock()
        self._listeners: dict[Listener, None] = {}

    def add_listener(self, listener: Listener) -> None:
        with self._listeners_lock:
            self._listeners[listener] = None

    def remove_listener(self, listener: Listener) -> None:
        with self._listeners_lock:
            self._listeners.pop(listener, None)

    def _send_update(self, update: Update) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(update)

    def get_service(self, service_urn: str) -> list[Entry]:
        """Known entries whose notification type is ``service_urn``."""
        with self._lock:
            return [entry for entry in self._by_usn.values() if entry.nt == service_urn]

    def serve_message(self, request: HTTPURequest) -> None:
        """Handle one HTTPU message; anything but NOTIFY is ignored."""
        if request.method != METHOD_NOTIFY:
            return
        nts = request.header("nts")
        handlers = {
            NTS_ALIVE: self._handle_alive,
            NTS_UPDATE: self._handle_update,
            NTS_BYEBYE: self._handle_byebye,
        }
        try:
            handler = handlers.get(nts)
            if handler is None:
                raise ValueError(f"unknown NTS value: {nts!r}")
            handler(request)
        except ValueError as exc:
            _log.warning(
                "ssdp: failed to handle %s message from %s: %s",
                nts,
                request.remote_addr,
                exc,
            )

    def _store(self, entry: Entry, event_type: EventType) -> None:
        with self._lock:
            self._by_usn[entry.usn] = entry
        self._send_update(Update(entry.usn, event_type, entry))

    def _handle_alive(self, request: HTTPURequest) -> None:
        self._store(entry_from_request(request), EventType.ALIVE)

    def _handle_update(self, request: HTTPURequest) -> None:
        entry = entry_from_request(request)
        next_boot_id = parse_upnp_int_header(request.headers, "NEXTBOOTID.UPNP.ORG", -1)
        self._store(replace(entry, boot_id=next_boot_id), EventType.UPDATE)

    def _handle_byebye(self, request: HTTPURequest) -> None:
        usn = request.header("USN")
        with self._lock:
            entry = self._by_usn.pop(usn, None)
        self._send_update(Update(usn, EventType.BYEBYE, entry))


def new_server_and_registry() -> tuple[Server, Registry]:
    """A registry and a multicast SSDP server that feeds it.

    Call ``listen_and_serve`` on the server for messages to be processed.
    """
    registry = Registry()
    server = Server(addr=SSDP_UDP4_ADDR, multicast=True, handler=registry)
    return server, registry