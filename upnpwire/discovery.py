"""Discovery of UPnP root devices on the local networks."""

from __future__ import annotations

import ipaddress
import socket
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from typing import Optional, Union

import psutil
import requests

from upnpwire.device import RootDevice, _checked_reference, request_xml
from upnpwire.httpu import LOCAL_ADDRESS_HEADER, HTTPUClient
from upnpwire.multiclient import MultiClient
from upnpwire.ssdp import raw_search

DEFAULT_SEARCH_TIMEOUT = 2.0
_NUM_SENDS = 3

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class ContextError(Exception):
    """An error wrapped with a description of what was being done."""

    def __init__(self, context: str, err: BaseException) -> None:
        self.context = context
        self.err = err
        super().__init__(context, err)

    def __str__(self) -> str:
        return f"{self.context}: {self.err}"


@dataclass
class MaybeRootDevice:
    """One discovery result: a root device, or the error met probing it.

    ``usn`` together with ``location`` identifies the result.
    """

    usn: str = ""
    root: Optional[RootDevice] = None
    location: Optional[str] = None
    local_addr: Optional[IPAddress] = None
    err: Optional[Exception] = None


def _interface_usable(stats) -> Optional[bool]:
    """Whether the interface is up, multicast-capable and not loopback.

    None when the platform does not report interface flags.
    """
    if not stats.isup:
        return False
    flags = {flag for flag in getattr(stats, "flags", "").split(",") if flag}
    if not flags:
        return None
    return "multicast" in flags and "loopback" not in flags


def local_ipv4_mcast_addrs() -> list[str]:
    """IPv4 addresses on the host's multicast-capable, non-loopback interfaces."""
    try:
        addrs_by_iface = psutil.net_if_addrs()
        stats_by_iface = psutil.net_if_stats()
    except (OSError, psutil.Error) as exc:
        raise ContextError("requesting host interfaces", exc) from exc

    result: list[str] = []
    for name, addrs in addrs_by_iface.items():
        stats = stats_by_iface.get(name)
        if stats is None:
            continue
        usable = _interface_usable(stats)
        if usable is False:
            continue
        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            try:
                ip = ipaddress.IPv4Address(addr.address)
            except ValueError:
                continue
            if usable is None and ip.is_loopback:
                continue
            result.append(str(ip))
    return result


@contextmanager
def httpu_client() -> Iterator[MultiClient]:
    """A client sending from every multicast-capable IPv4 address of the host.

    The underlying sockets are closed on leaving the context.
    """
    addrs = local_ipv4_mcast_addrs()
    with ExitStack() as stack:
        delegates: list[HTTPUClient] = []
        for addr in addrs:
            try:
                client = HTTPUClient.for_address(addr)
            except (OSError, ValueError) as exc:
                raise ContextError(
                    f"creating HTTPU client for address {addr}", exc
                ) from exc
            stack.callback(client.close)
            delegates.append(client)
        yield MultiClient(delegates)


def device_by_url(location: str) -> RootDevice:
    """Fetch and parse the root device description at ``location``."""
    try:
        root = RootDevice.from_xml(request_xml(location))
    except (requests.RequestException, ValueError) as exc:
        raise ContextError(
            f'error requesting root device details from "{location}"', exc
        ) from exc
    url_base = root.url_base_str or location
    try:
        _checked_reference(url_base)
    except ValueError as exc:
        raise ContextError(f'error parsing location URL "{location}"', exc) from exc
    root.set_url_base(url_base)
    return root


def _parse_ip(text: str) -> Optional[IPAddress]:
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        return None


def discover_devices(
    search_target: str, timeout: float = DEFAULT_SEARCH_TIMEOUT
) -> list[MaybeRootDevice]:
    """Search for ``search_target`` and probe every device that answers.

    Failing to send the search raises; a failure probing one device is
    recorded in its result.
    """
    with httpu_client() as client:
        responses = raw_search(client, search_target, _NUM_SENDS, timeout)

    results: list[MaybeRootDevice] = []
    for response in responses:
        maybe = MaybeRootDevice(usn=response.header("USN"))
        results.append(maybe)
        try:
            location = response.location().geturl()
        except ValueError as exc:
            maybe.err = ContextError("unexpected bad location from search", exc)
            continue
        maybe.location = location
        try:
            maybe.root = device_by_url(location)
        except ContextError as exc:
            maybe.err = exc
        local = response.header(LOCAL_ADDRESS_HEADER)
        if local:
            maybe.local_addr = _parse_ip(local)
    return results