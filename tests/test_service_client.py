from unittest import mock

import pytest
import responses

from upnpwire.device import RootDevice
from upnpwire.discovery import ContextError
from upnpwire.service_client import (
    ServiceNotFoundError,
    new_service_clients,
    new_service_clients_by_url,
    new_service_clients_from_root_device,
)

WAN_IP = "urn:schemas-upnp-org:service:WANIPConnection:1"
OTHER = "urn:schemas-upnp-org:service:Layer3Forwarding:1"
LOCATION = "http://192.0.2.10:5000/rootDesc.xml"

DEVICE_XML = f"""<?xml version="1.0"?>
<root xmlns="urn:schemas-upnp-org:device-1-0">
  <specVersion><major>1</major><minor>0</minor></specVersion>
  <device>
    <deviceType>urn:schemas-upnp-org:device:InternetGatewayDevice:1</deviceType>
    <friendlyName>Test Gateway</friendlyName>
    <UDN>uuid:00000000-0000-0000-0000-000000000001</UDN>
    <serviceList>
      <service>
        <serviceType>{OTHER}</serviceType>
        <serviceId>urn:upnp-org:serviceId:L3F</serviceId>
        <SCPDURL>/l3f.xml</SCPDURL>
        <controlURL>/ctl/L3F</controlURL>
        <eventSubURL>/evt/L3F</eventSubURL>
      </service>
    </serviceList>
    <deviceList>
      <device>
        <deviceType>urn:schemas-upnp-org:device:WANConnectionDevice:1</deviceType>
        <friendlyName>WAN Connection</friendlyName>
        <UDN>uuid:00000000-0000-0000-0000-000000000002</UDN>
        <serviceList>
          <service>
            <serviceType>{WAN_IP}</serviceType>
            <serviceId>urn:upnp-org:serviceId:WANIPConn1</serviceId>
            <SCPDURL>/ipconn.xml</SCPDURL>
            <controlURL>/ctl/IPConn</controlURL>
            <eventSubURL>/evt/IPConn</eventSubURL>
          </service>
          <service>
            <serviceType>{WAN_IP}</serviceType>
            <serviceId>urn:upnp-org:serviceId:WANIPConn2</serviceId>
            <SCPDURL>/ipconn2.xml</SCPDURL>
            <controlURL>ctl/IPConn2</controlURL>
            <eventSubURL>/evt/IPConn2</eventSubURL>
          </service>
        </serviceList>
      </device>
    </deviceList>
  </device>
</root>
"""


@pytest.fixture
def root_device():
    root = RootDevice.from_xml(DEVICE_XML)
    root.set_url_base(LOCATION)
    return root


def test_clients_from_root_device_find_nested_services(root_device):
    clients = new_service_clients_from_root_device(root_device, LOCATION, WAN_IP)
    assert [c.service.service_id for c in clients] == [
        "urn:upnp-org:serviceId:WANIPConn1",
        "urn:upnp-org:serviceId:WANIPConn2",
    ]
    for client in clients:
        assert client.root_device is root_device
        assert client.location == LOCATION
        assert client.local_addr() is None
        assert client.soap_client.endpoint_url == client.service.control_url.url


def test_control_url_resolved_against_location(root_device):
    clients = new_service_clients_from_root_device(root_device, LOCATION, WAN_IP)
    assert clients[0].soap_client.endpoint_url == "http://192.0.2.10:5000/ctl/IPConn"


def test_missing_service_raises(root_device):
    with pytest.raises(ServiceNotFoundError) as info:
        new_service_clients_from_root_device(root_device, LOCATION, "urn:nothing")
    assert "Test Gateway" in str(info.value)
    assert "urn:nothing" in str(info.value)


def test_clients_by_url():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, LOCATION, body=DEVICE_XML, status=200)
        clients = new_service_clients_by_url(LOCATION, OTHER)
    assert len(clients) == 1
    assert clients[0].location == LOCATION
    assert clients[0].root_device.device.friendly_name == "Test Gateway"
    assert clients[0].service.service_type == OTHER


def test_clients_by_url_http_error():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, LOCATION, body="", status=404)
        with pytest.raises(ContextError):
            new_service_clients_by_url(LOCATION, OTHER)


def test_new_service_clients_without_interfaces():
    with mock.patch("psutil.net_if_addrs", return_value={}), mock.patch(
        "psutil.net_if_stats", return_value={}
    ):
        clients, errors = new_service_clients(WAN_IP)
    assert clients == []
    assert errors == []


def test_new_service_clients_interface_failure():
    with mock.patch("psutil.net_if_addrs", side_effect=OSError("boom")), mock.patch(
        "psutil.net_if_stats", return_value={}
    ):
        with pytest.raises(ContextError) as info:
            new_service_clients(WAN_IP)
    assert "requesting host interfaces" in str(info.value)