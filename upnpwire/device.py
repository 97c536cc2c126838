"""UPnP device descriptions: root devices, devices, services and icons."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Union
from urllib.parse import urljoin, urlsplit

import requests

from upnpwire.scpd import (
    SCPD,
    SpecVersion,
    _direct_text,
    _int32,
    _kids,
    _local,
    _path,
    _text,
)
from upnpwire.soap import SOAPClient

DEVICE_XML_NAMESPACE = "urn:schemas-upnp-org:device-1-0"

DEFAULT_REQUEST_TIMEOUT = 3.0

_BAD_ESCAPE_RX = re.compile(r"%(?![0-9A-Fa-f]{2})")


def request_xml(url: str, timeout: float = DEFAULT_REQUEST_TIMEOUT) -> bytes:
    """Fetch an XML document over HTTP, requiring status 200."""
    response = requests.get(url, timeout=timeout)
    with response:
        if response.status_code != 200:
            raise requests.HTTPError(
                f"got response status {response.status_code} "
                f'{response.reason or ""} from "{url}"'.replace("  ", " "),
                response=response,
            )
        return response.content


def _checked_reference(text: str) -> str:
    """Reject references that cannot be parsed as a URL."""
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in text):
        raise ValueError(f"invalid control character in URL {text!r}")
    head = text.split("#", 1)[0].split("?", 1)[0]
    if _BAD_ESCAPE_RX.search(head):
        raise ValueError(f"invalid URL escape in {text!r}")
    urlsplit(text)
    return text


@dataclass
class URLField:
    """A URL from a device description, resolved once a base is set."""

    text: str = ""
    url: str = ""
    ok: bool = False

    def set_url_base(self, url_base: str) -> None:
        """Resolve the text against ``url_base``; on failure ``ok`` is False."""
        text = self.text
        if "://" not in text and not text.startswith("/"):
            text = "/" + text
        try:
            resolved = urljoin(url_base, _checked_reference(text))
        except ValueError:
            self.url = ""
            self.ok = False
            return
        self.url = resolved
        self.ok = True


def _url_field(elem: ET.Element, name: str) -> URLField:
    matches = _kids(elem, name)
    return URLField(_direct_text(matches[-1]) if matches else "")


@dataclass
class Icon:
    """An image that represents a device."""

    mimetype: str = ""
    width: int = 0
    height: int = 0
    depth: int = 0
    url: URLField = field(default_factory=URLField)

    def set_url_base(self, url_base: str) -> None:
        self.url.set_url_base(url_base)

    @classmethod
    def _from_element(cls, elem: ET.Element) -> "Icon":
        return cls(
            mimetype=_text(elem, "mimetype"),
            width=_int32(elem, "width"),
            height=_int32(elem, "height"),
            depth=_int32(elem, "depth"),
            url=_url_field(elem, "url"),
        )


@dataclass
class Service:
    """A service provided by a device."""

    service_type: str = ""
    service_id: str = ""
    scpd_url: URLField = field(default_factory=URLField)
    control_url: URLField = field(default_factory=URLField)
    event_sub_url: URLField = field(default_factory=URLField)

    def set_url_base(self, url_base: str) -> None:
        self.scpd_url.set_url_base(url_base)
        self.control_url.set_url_base(url_base)
        self.event_sub_url.set_url_base(url_base)

    def request_scpd(self) -> SCPD:
        """Fetch the description of the service's actions and state variables."""
        if not self.scpd_url.ok:
            raise ValueError("bad/missing SCPD URL, or no URLBase has been set")
        return SCPD.from_xml(request_xml(self.scpd_url.url))

    def new_soap_client(self) -> SOAPClient:
        """A SOAP client for the service's control URL."""
        return SOAPClient(self.control_url.url)

    def __str__(self) -> str:
        return f"Service ID {self.service_id} : {self.service_type}"

    @classmethod
    def _from_element(cls, elem: ET.Element) -> "Service":
        return cls(
            service_type=_text(elem, "serviceType"),
            service_id=_text(elem, "serviceId"),
            scpd_url=_url_field(elem, "SCPDURL"),
            control_url=_url_field(elem, "controlURL"),
            event_sub_url=_url_field(elem, "eventSubURL"),
        )


@dataclass
class Device:
    """A UPnP device, which may contain services and child devices."""

    device_type: str = ""
    friendly_name: str = ""
    manufacturer: str = ""
    manufacturer_url: URLField = field(default_factory=URLField)
    model_description: str = ""
    model_name: str = ""
    model_number: str = ""
    model_type: str = ""
    model_url: URLField = field(default_factory=URLField)
    serial_number: str = ""
    udn: str = ""
    upc: str = ""
    icons: list[Icon] = field(default_factory=list)
    services: list[Service] = field(default_factory=list)
    devices: list["Device"] = field(default_factory=list)
    presentation_url: URLField = field(default_factory=URLField)

    def iter_devices(self) -> Iterator["Device"]:
        """This device and all its descendants, depth first."""
        yield self
        for child in self.devices:
            yield from child.iter_devices()

    def iter_services(self) -> Iterator[Service]:
        """All services of this device and its descendants."""
        for device in self.iter_devices():
            yield from device.services

    def find_service(self, service_type: str) -> list[Service]:
        """All services here and below that have the given type."""
        return [s for s in self.iter_services() if s.service_type == service_type]

    def set_url_base(self, url_base: str) -> None:
        """Resolve every URL of this device and its descendants."""
        self.manufacturer_url.set_url_base(url_base)
        self.model_url.set_url_base(url_base)
        self.presentation_url.set_url_base(url_base)
        for icon in self.icons:
            icon.set_url_base(url_base)
        for service in self.services:
            service.set_url_base(url_base)
        for child in self.devices:
            child.set_url_base(url_base)

    def __str__(self) -> str:
        return f"Device ID {self.udn} : {self.device_type} ({self.friendly_name})"

    @classmethod
    def _from_element(cls, elem: ET.Element) -> "Device":
        return cls(
            device_type=_text(elem, "deviceType"),
            friendly_name=_text(elem, "friendlyName"),
            manufacturer=_text(elem, "manufacturer"),
            manufacturer_url=_url_field(elem, "manufacturerURL"),
            model_description=_text(elem, "modelDescription"),
            model_name=_text(elem, "modelName"),
            model_number=_text(elem, "modelNumber"),
            model_type=_text(elem, "modelType"),
            model_url=_url_field(elem, "modelURL"),
            serial_number=_text(elem, "serialNumber"),
            udn=_text(elem, "UDN"),
            upc=_text(elem, "UPC"),
            icons=[Icon._from_element(e) for e in _path(elem, "iconList", "icon")],
            services=[
                Service._from_element(e) for e in _path(elem, "serviceList", "service")
            ],
            devices=[
                Device._from_element(e) for e in _path(elem, "deviceList", "device")
            ],
            presentation_url=_url_field(elem, "presentationURL"),
        )


@dataclass
class RootDevice:
    """A device description document."""

    spec_version: SpecVersion = field(default_factory=SpecVersion)
    url_base: str = ""
    url_base_str: str = ""
    device: Device = field(default_factory=Device)

    @classmethod
    def from_xml(cls, data: Union[bytes, str]) -> "RootDevice":
        """Parse a device description document."""
        try:
            root = ET.fromstring(data)
        except ET.ParseError as exc:
            raise ValueError(f"device: malformed XML: {exc}") from exc
        if _local(root.tag) != "root":
            raise ValueError(
                f"device: expected element type <root> but have <{_local(root.tag)}>"
            )
        versions = _kids(root, "specVersion")
        spec_version = SpecVersion()
        if versions:
            spec_version = SpecVersion(
                _int32(versions[-1], "major"), _int32(versions[-1], "minor")
            )
        devices = _kids(root, "device")
        device = Device._from_element(devices[-1]) if devices else Device()
        return cls(
            spec_version=spec_version,
            url_base_str=_text(root, "URLBase"),
            device=device,
        )

    def set_url_base(self, url_base: str) -> None:
        """Set the base URL and resolve every URL in the description."""
        self.url_base = url_base
        self.url_base_str = url_base
        self.device.set_url_base(url_base)