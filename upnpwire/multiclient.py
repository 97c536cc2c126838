"""An HTTPU client that fans a request out to several clients."""

from __future__ import annotations

from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

from upnpwire.httpu import HTTPURequest, HTTPUResponse


class _Client(Protocol):
    def do(
        self, request: HTTPURequest, timeout: float, num_sends: int
    ) -> list[HTTPUResponse]: ...


class MultiClient:
    """Sends each request through all delegate clients at once."""

    def __init__(self, delegates: Iterable[_Client]) -> None:
        self.delegates = list(delegates)

    def do(
        self, request: HTTPURequest, timeout: float, num_sends: int
    ) -> list[HTTPUResponse]:
        """Run the request on every delegate and join their responses.

        Waits for all delegates; if any of them failed, the first failure in
        delegate order is raised.
        """
        if not self.delegates:
            return []
        with ThreadPoolExecutor(max_workers=len(self.delegates)) as pool:
            futures = [
                pool.submit(delegate.do, request, timeout, num_sends)
                for delegate in self.delegates
            ]
        responses: list[HTTPUResponse] = []
        for future in futures:
            responses.extend(future.result())
        return responses