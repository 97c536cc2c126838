"""SSDP search requests and the filtering of their responses."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Optional, Protocol

from upnpwire.httpu import HTTPURequest, HTTPUResponse

SSDP_DISCOVER = '"ssdp:discover"'
NTS_ALIVE = "ssdp:alive"
NTS_BYEBYE = "ssdp:byebye"
NTS_UPDATE = "ssdp:update"
SSDP_UDP4_ADDR = "239.255.255.250:1900"
SSDP_SEARCH_PORT = 1900
METHOD_SEARCH = "M-SEARCH"
METHOD_NOTIFY = "NOTIFY"

SSDP_ALL = "ssdp:all"
"""Search target that finds all devices and services."""

UPNP_ROOT_DEVICE = "upnp:rootdevice"
"""Search target that finds all root devices."""

DEFAULT_MAX_WAIT_SECONDS = 3

# Extra time allowed for responses to arrive after the advertised wait.
_RESPONSE_GRACE = 0.1

_log = logging.getLogger(__name__)


class _Client(Protocol):
    def do(
        self, request: HTTPURequest, timeout: float, num_sends: int
    ) -> list[HTTPUResponse]: ...


def prepare_request(search_target: str, max_wait_seconds: int) -> HTTPURequest:
    """Build an SSDP M-SEARCH request for ``search_target``."""
    if max_wait_seconds < 1:
        raise ValueError("ssdp: request timeout must be at least 1s")
    # Header names are kept upper case: the discovery protocol is
    # case-sensitive about them.
    return HTTPURequest(
        method=METHOD_SEARCH,
        host=SSDP_UDP4_ADDR,
        uri="*",
        headers=[
            ("HOST", SSDP_UDP4_ADDR),
            ("MX", str(int(max_wait_seconds))),
            ("MAN", SSDP_DISCOVER),
            ("ST", search_target),
        ],
    )


def process_responses(
    search_target: str, responses: Iterable[HTTPUResponse]
) -> list[HTTPUResponse]:
    """Keep the usable, unique responses to a search.

    Responses must have status 200 and a valid location; for an exact search
    their ST must match. Duplicates by location and USN are dropped.
    """
    is_exact = search_target not in (SSDP_ALL, UPNP_ROOT_DEVICE)
    seen: set[str] = set()
    result: list[HTTPUResponse] = []
    for response in responses:
        if response.status_code != 200:
            _log.warning(
                "ssdp: got response status code %r in search response", response.status
            )
            continue
        if is_exact and response.header("ST") != search_target:
            continue
        usn = response.header("USN")
        try:
            location = response.location()
        except ValueError:
            continue
        key = location.geturl() + "\x00" + usn
        if key not in seen:
            seen.add(key)
            result.append(response)
    return result


def raw_search(
    client: _Client,
    search_target: str,
    num_sends: int,
    timeout: Optional[float] = None,
) -> list[HTTPUResponse]:
    """Search for ``search_target``, waiting ``timeout`` seconds for answers.

    The whole seconds of ``timeout`` are advertised as the maximum wait; with
    no timeout, three seconds are used.
    """
    if timeout is None:
        max_wait = DEFAULT_MAX_WAIT_SECONDS
        timeout = float(DEFAULT_MAX_WAIT_SECONDS)
    else:
        max_wait = int(timeout)
    request = prepare_request(search_target, max_wait)
    return process_responses(search_target, client.do(request, timeout, num_sends))


def search(
    client: _Client, search_target: str, max_wait_seconds: int, num_sends: int
) -> list[HTTPUResponse]:
    """Search, advertising ``max_wait_seconds`` and waiting slightly longer."""
    request = prepare_request(search_target, max_wait_seconds)
    responses = client.do(request, max_wait_seconds + _RESPONSE_GRACE, num_sends)
    return process_responses(search_target, responses)