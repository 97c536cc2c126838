"""Clients that pair a SOAP client with the root device and service it talks to."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from upnpwire.device import RootDevice, Service
from upnpwire.discovery import IPAddress, device_by_url, discover_devices
from upnpwire.soap import SOAPClient


class ServiceNotFoundError(LookupError):
    """Raised when a root device holds no service of the requested type."""


@dataclass
class ServiceClient:
    """A SOAP client together with the root device and service it belongs to.

    ``location`` can be passed to ``new_service_clients_by_url`` later to
    recreate the client without going through discovery again.
    """

    soap_client: SOAPClient
    root_device: RootDevice
    location: Optional[str]
    service: Service
    _local_addr: Optional[IPAddress] = field(default=None, repr=False)

    def local_addr(self) -> Optional[IPAddress]:
        """The local address the device was discovered from, if known."""
        return self._local_addr


def _clients_from_root_device(
    root_device: RootDevice,
    location: Optional[str],
    search_target: str,
    local_addr: Optional[IPAddress],
) -> list[ServiceClient]:
    device = root_device.device
    services = device.find_service(search_target)
    if not services:
        raise ServiceNotFoundError(
            f"service {search_target!r} not found within device "
            f"{device.friendly_name!r} (UDN={device.udn!r})"
        )
    return [
        ServiceClient(
            soap_client=service.new_soap_client(),
            root_device=root_device,
            location=location,
            service=service,
            _local_addr=local_addr,
        )
        for service in services
    ]


def new_service_clients(
    search_target: str,
) -> tuple[list[ServiceClient], list[Exception]]:
    """Discover services of the given type and return clients for them.

    Failing to search raises; problems with single root devices are returned
    in the list of errors alongside the clients.
    """
    clients: list[ServiceClient] = []
    errors: list[Exception] = []
    for maybe in discover_devices(search_target):
        if maybe.err is not None:
            errors.append(maybe.err)
            continue
        try:
            clients.extend(
                _clients_from_root_device(
                    maybe.root, maybe.location, search_target, maybe.local_addr
                )
            )
        except ServiceNotFoundError as exc:
            errors.append(exc)
    return clients, errors


def new_service_clients_by_url(location: str, search_target: str) -> list[ServiceClient]:
    """Clients for the services of the given type in the root device at ``location``."""
    root_device = device_by_url(location)
    return new_service_clients_from_root_device(root_device, location, search_target)


def new_service_clients_from_root_device(
    root_device: RootDevice, location: Optional[str], search_target: str
) -> list[ServiceClient]:
    """Clients for the services of the given type within ``root_device``.

    ``location`` is only recorded on the returned clients.
    """
    return _clients_from_root_device(root_device, location, search_target, None)