"""SOAP request encoding and the client used for UPnP control actions."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Optional, Union
from xml.parsers import expat

import requests

SOAP_ENVELOPE_NS = "http://schemas.xmlsoap.org/soap/envelope/"
SOAP_ENCODING_STYLE = "http://schemas.xmlsoap.org/soap/encoding/"

_XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'
_SOAP_PREFIX = (
    _XML_HEADER
    + f'<s:Envelope xmlns:s="{SOAP_ENVELOPE_NS}" '
    + f's:encodingStyle="{SOAP_ENCODING_STYLE}"><s:Body>'
)
_SOAP_SUFFIX = "</s:Body></s:Envelope>"

Arguments = Union[Mapping[str, str], Iterable[tuple[str, str]]]


class SOAPError(Exception):
    """Raised when a SOAP action cannot be performed."""


class SOAPFaultError(SOAPError):
    """A SOAP fault returned by the server, with any UPnP error detail."""

    def __init__(
        self,
        fault_code: str = "",
        fault_string: str = "",
        error_code: int = 0,
        error_description: str = "",
        detail_raw: str = "",
    ) -> None:
        self.fault_code = fault_code
        self.fault_string = fault_string
        self.error_code = error_code
        self.error_description = error_description
        self.detail_raw = detail_raw
        super().__init__(
            f"SOAP fault. Code: {fault_code} | Explanation: {fault_string} "
            f"| Detail: {detail_raw}"
        )


# --- escaping -------------------------------------------------------------

_XML_CHAR_RX = re.compile("[<>&]")
_ENTITIES = {"<": "&lt;", ">": "&gt;", "&": "&amp;"}

_FULL_ESCAPES = {
    '"': "&#34;",
    "'": "&#39;",
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    "\t": "&#x9;",
    "\n": "&#xA;",
    "\r": "&#xD;",
}


def escape_xml_text(text: str) -> str:
    """Escape only ``<``, ``>`` and ``&`` for use as XML text content.

    Some SOAP servers fail to decode other entities, so quotes are left alone.
    This is only safe for text content, not for attribute values.
    """
    return _XML_CHAR_RX.sub(lambda m: _ENTITIES[m.group(0)], text)


def _is_xml_char(code: int) -> bool:
    return (
        code in (0x09, 0x0A, 0x0D)
        or 0x20 <= code <= 0xD7FF
        or 0xE000 <= code <= 0xFFFD
        or 0x10000 <= code <= 0x10FFFF
    )


def _escape_full(text: str) -> str:
    out = []
    for ch in text:
        if ch in _FULL_ESCAPES:
            out.append(_FULL_ESCAPES[ch])
        elif not _is_xml_char(ord(ch)):
            out.append("\ufffd")
        else:
            out.append(ch)
    return "".join(out)


# --- encoding -------------------------------------------------------------


def _argument_pairs(arguments: Arguments) -> Iterable[tuple[str, str]]:
    if isinstance(arguments, Mapping):
        return arguments.items()
    return arguments


def encode_request_action(
    action_namespace: str, action_name: str, arguments: Optional[Arguments] = None
) -> bytes:
    """Build the SOAP envelope for an action call with string arguments.

    The outer XML is written by hand: some routers reject requests whose
    default namespace is reassigned inside the envelope.
    """
    parts = [
        _SOAP_PREFIX,
        "<u:",
        _escape_full(action_name),
        ' xmlns:u="',
        _escape_full(action_namespace),
        '">',
    ]
    if arguments is not None:
        for name, value in _argument_pairs(arguments):
            if not name:
                raise SOAPError("SOAP arg has an empty name")
            if not isinstance(value, str):
                raise SOAPError(
                    f"SOAP arg {name!r} is not of type string, "
                    f"but of type {type(value).__name__}"
                )
            parts.append(f"<{name}>{escape_xml_text(value)}</{name}>")
    parts.extend(["</u:", _escape_full(action_name), ">", _SOAP_SUFFIX])
    return "".join(parts).encode("utf-8")


# --- decoding -------------------------------------------------------------


@dataclass
class _Node:
    space: str
    local: str
    start: int
    text: str = ""
    raw: str = ""
    children: list["_Node"] = field(default_factory=list)

    def child(self, local: str, space: Optional[str] = None) -> Optional["_Node"]:
        for node in self.children:
            if node.local == local and (space is None or node.space == space):
                return node
        return None

    def child_text(self, local: str) -> str:
        node = self.child(local)
        return node.text if node is not None else ""


def _start_tag_end(data: bytes, start: int) -> int:
    """Index just past the ``>`` closing the start tag beginning at ``start``."""
    quote = None
    for index in range(start, len(data)):
        byte = data[index]
        if quote is not None:
            if byte == quote:
                quote = None
        elif byte in (0x22, 0x27):
            quote = byte
        elif byte == 0x3E:
            return index + 1
    return len(data)


def _parse_document(data: bytes) -> _Node:
    parser = expat.ParserCreate(namespace_separator=" ")
    stack: list[_Node] = []
    roots: list[_Node] = []

    def on_start(name: str, _attrs) -> None:
        space, _, local = name.rpartition(" ")
        node = _Node(space, local, parser.CurrentByteIndex)
        (stack[-1].children if stack else roots).append(node)
        stack.append(node)

    def on_end(_name: str) -> None:
        node = stack.pop()
        tag_end = _start_tag_end(data, node.start)
        if data[tag_end - 2 : tag_end - 1] == b"/":
            node.raw = ""
        else:
            node.raw = data[tag_end : parser.CurrentByteIndex].decode(
                "utf-8", errors="replace"
            )

    def on_chars(text: str) -> None:
        if stack:
            stack[-1].text += text

    parser.StartElementHandler = on_start
    parser.EndElementHandler = on_end
    parser.CharacterDataHandler = on_chars
    parser.Parse(data, True)
    if not roots:
        raise expat.ExpatError("no root element")
    return roots[0]


_INT_RX = re.compile(r"[+-]?[0-9]+")


def _fault_from_node(node: _Node) -> SOAPFaultError:
    detail = node.child("detail")
    error_code = 0
    error_description = ""
    detail_raw = ""
    if detail is not None:
        detail_raw = detail.raw
        upnp_error = detail.child("UPnPError")
        if upnp_error is not None:
            code_text = upnp_error.child_text("errorCode").strip()
            if code_text:
                if _INT_RX.fullmatch(code_text) is None:
                    raise SOAPError(
                        f"error decoding response body: bad errorCode {code_text!r}"
                    )
                error_code = int(code_text)
            error_description = upnp_error.child_text("errorDescription")
    return SOAPFaultError(
        fault_code=node.child_text("faultcode"),
        fault_string=node.child_text("faultstring"),
        error_code=error_code,
        error_description=error_description,
        detail_raw=detail_raw,
    )


@dataclass
class SOAPClient:
    """Performs SOAP actions against one control endpoint."""

    endpoint_url: str
    session: requests.Session = field(default_factory=requests.Session)
    timeout: Optional[float] = None

    def perform_action(
        self,
        action_namespace: str,
        action_name: str,
        arguments: Optional[Arguments] = None,
    ) -> dict[str, str]:
        """Call an action and return its output arguments by name."""
        body = encode_request_action(action_namespace, action_name, arguments)
        headers = {
            "SOAPACTION": f'"{action_namespace}#{action_name}"',
            "CONTENT-TYPE": 'text/xml; charset="utf-8"',
        }
        try:
            response = self.session.post(
                self.endpoint_url, data=body, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise SOAPError(f"error performing SOAP HTTP request: {exc}") from exc
        with response:
            content = response.content
        status = f"{response.status_code} {response.reason or ''}".strip()
        if response.status_code != 200 and not content:
            raise SOAPError(f"SOAP request got HTTP {status}")

        try:
            envelope = _parse_document(content)
        except expat.ExpatError as exc:
            raise SOAPError(f"error decoding response body: {exc}") from exc
        if envelope.space != SOAP_ENVELOPE_NS or envelope.local != "Envelope":
            raise SOAPError(
                "error decoding response body: expected element type "
                f"<Envelope> but have <{envelope.local}>"
            )

        soap_body = envelope.child("Body", SOAP_ENVELOPE_NS)
        fault = soap_body.child("Fault") if soap_body is not None else None
        if fault is not None:
            raise _fault_from_node(fault)
        if response.status_code != 200:
            raise SOAPError(f"SOAP request got HTTP {status}")

        if soap_body is None or not soap_body.children:
            return {}
        action = soap_body.children[0]
        return {child.local: child.text for child in action.children}