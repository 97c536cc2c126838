from datetime import timedelta

import pytest

from upnpwire.httpu import HTTPURequest
from upnpwire.registry import (
    EventType,
    Registry,
    entry_from_request,
    new_server_and_registry,
    parse_cache_control_max_age,
    parse_upnp_int_header,
)
from upnpwire.serve import parse_request

NT = "urn:schemas-upnp-org:service:WANIPConnection:1"


def notify(nts, usn="uuid:dev-1::" + NT, extra=()):
    headers = [
        ("HOST", "239.255.255.250:1900"),
        ("CACHE-CONTROL", "max-age=1800"),
        ("LOCATION", "http://10.0.0.1:5000/desc.xml"),
        ("NT", NT),
        ("NTS", nts),
        ("SERVER", "TestOS/1.0 UPnP/1.1 Test/1.0"),
        ("USN", usn),
        *extra,
    ]
    return HTTPURequest(
        method="NOTIFY", host="239.255.255.250:1900", uri="*",
        headers=headers, remote_addr="10.0.0.1:1900",
    )


def test_event_type_strings():
    registry = Registry()
    updates = []
    registry.add_listener(updates.append)
    registry.serve_message(notify("ssdp:alive"))
    registry.serve_message(notify("ssdp:update"))
    registry.serve_message(notify("ssdp:byebye"))
    assert [str(u.event_type) for u in updates] == [
        "EventAlive",
        "EventUpdate",
        "EventByeBye",
    ]


def test_max_age_parsed():
    assert parse_cache_control_max_age("max-age=1800") == timedelta(seconds=1800)
    assert parse_cache_control_max_age("public, max-age=  60") == timedelta(seconds=60)


@pytest.mark.parametrize("value", ["", "no-cache", "max-age=0", "max-age=40000"])
def test_max_age_rejected(value):
    with pytest.raises(ValueError):
        parse_cache_control_max_age(value)


def test_int_header():
    headers = [("BOOTID.UPNP.ORG", "42"), ("CONFIGID.UPNP.ORG", "")]
    assert parse_upnp_int_header(headers, "bootid.upnp.org", -1) == 42
    assert parse_upnp_int_header(headers, "CONFIGID.UPNP.ORG", -1) == -1
    assert parse_upnp_int_header(headers, "SEARCHPORT.UPNP.ORG", 1900) == 1900


@pytest.mark.parametrize("value", ["abc", "3000000000", "1.5"])
def test_int_header_rejected(value):
    with pytest.raises(ValueError, match="BOOTID.UPNP.ORG"):
        parse_upnp_int_header([("BOOTID.UPNP.ORG", value)], "BOOTID.UPNP.ORG", -1)


def test_entry_from_request():
    entry = entry_from_request(notify("ssdp:alive", extra=[("BOOTID.UPNP.ORG", "7")]))
    assert entry.nt == NT
    assert entry.usn == "uuid:dev-1::" + NT
    assert entry.remote_addr == "10.0.0.1:1900"
    assert entry.location.geturl() == "http://10.0.0.1:5000/desc.xml"
    assert entry.boot_id == 7
    assert entry.config_id == -1
    assert entry.search_port == 1900
    assert entry.cache_expiry - entry.last_update == timedelta(seconds=1800)


def test_entry_from_parsed_datagram():
    data = (
        b"NOTIFY * HTTP/1.1 \r\nHOST: 239.255.255.250:1900\r\n"
        b"CACHE-CONTROL: max-age=100\r\nNT: upnp:rootdevice\r\n"
        b"NTS: ssdp:alive\r\nUSN: uuid:dev-2\r\n\r\n"
    )
    entry = entry_from_request(parse_request(data, "10.0.0.2:1900"))
    assert entry.nt == "upnp:rootdevice"
    assert entry.usn == "uuid:dev-2"
    assert entry.host == "239.255.255.250:1900"


@pytest.mark.parametrize("port", ["0", "65536"])
def test_entry_bad_search_port(port):
    with pytest.raises(ValueError, match="search port"):
        entry_from_request(notify("ssdp:alive", extra=[("SEARCHPORT.UPNP.ORG", port)]))


def test_entry_missing_cache_control():
    request = notify("ssdp:alive")
    request.headers = [h for h in request.headers if h[0] != "CACHE-CONTROL"]
    with pytest.raises(ValueError, match="CACHE-CONTROL"):
        entry_from_request(request)


def test_alive_then_byebye():
    registry = Registry()
    updates = []
    registry.add_listener(updates.append)
    registry.serve_message(notify("ssdp:alive"))
    assert [e.usn for e in registry.get_service(NT)] == ["uuid:dev-1::" + NT]
    assert updates[0].event_type is EventType.ALIVE
    assert updates[0].entry is registry.get_service(NT)[0]

    registry.serve_message(notify("ssdp:byebye"))
    assert registry.get_service(NT) == []
    assert updates[1].event_type is EventType.BYEBYE
    assert updates[1].entry is updates[0].entry


def test_byebye_unknown_usn():
    registry = Registry()
    updates = []
    registry.add_listener(updates.append)
    registry.serve_message(notify("ssdp:byebye", usn="uuid:unknown"))
    assert len(updates) == 1
    assert updates[0].usn == "uuid:unknown"
    assert updates[0].entry is None


def test_update_uses_next_boot_id():
    registry = Registry()
    updates = []
    registry.add_listener(updates.append)
    registry.serve_message(
        notify("ssdp:update", extra=[("BOOTID.UPNP.ORG", "1"), ("NEXTBOOTID.UPNP.ORG", "2")])
    )
    assert updates[0].event_type is EventType.UPDATE
    assert registry.get_service(NT)[0].boot_id == 2


def test_ignored_messages():
    registry = Registry()
    updates = []
    registry.add_listener(updates.append)
    search = notify("ssdp:alive")
    search.method = "M-SEARCH"
    registry.serve_message(search)
    registry.serve_message(notify("ssdp:bogus"))
    bad = notify("ssdp:alive", extra=[("SEARCHPORT.UPNP.ORG", "0")])
    registry.serve_message(bad)
    assert updates == []
    assert registry.get_service(NT) == []


def test_remove_listener():
    registry = Registry()
    updates = []
    registry.add_listener(updates.append)
    registry.remove_listener(updates.append)
    registry.serve_message(notify("ssdp:alive"))
    assert updates == []
    assert len(registry.get_service(NT)) == 1


def test_new_server_and_registry():
    server, registry = new_server_and_registry()
    assert server.addr == "239.255.255.250:1900"
    assert server.multicast is True
    assert server.handler is registry