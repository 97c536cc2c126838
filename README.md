# upnpwire

A UPnP client library. It finds devices on the local network with SSDP,
reads their device and service descriptions, and calls their SOAP actions.

## Installing

```
pip install upnpwire
```

To run the test suite:

```
pip install "upnpwire[test]"
pytest
```

## What is in the package

| Module | Purpose |
| --- | --- |
| `upnpwire.discovery` | `discover_devices`, `device_by_url`, `httpu_client`, `local_ipv4_mcast_addrs`: SSDP search over every multicast-capable IPv4 address, and fetching root device descriptions |
| `upnpwire.device` | `RootDevice`, `Device`, `Service`, `Icon`, `URLField`, `request_xml`: the device description tree |
| `upnpwire.service_client` | `ServiceClient`, `new_service_clients`, `new_service_clients_by_url`, `new_service_clients_from_root_device` |
| `upnpwire.soap` | `SOAPClient`, `SOAPError`, `SOAPFaultError`, `encode_request_action`, `escape_xml_text` |
| `upnpwire.soaptypes` | Conversion between Python values and UPnP data types (`ui4`, `boolean`, `dateTime.tz`, ...), and `TYPE_DATA_MAP` |
| `upnpwire.scpd` | `SCPD`: a service's actions and state variables |
| `upnpwire.ssdp` | `prepare_request`, `process_responses`, `raw_search`, `search` |
| `upnpwire.registry` | `Registry`: keeps track of devices from SSDP NOTIFY messages |
| `upnpwire.httpu` | `HTTPUClient`, `HTTPURequest`, `HTTPUResponse`: HTTP over UDP |
| `upnpwire.multiclient` | `MultiClient`: send one HTTPU request through several clients at once |
| `upnpwire.serve` | `Server`, `serve`, `parse_request`: receive HTTPU messages |
| `upnpwire.zipread` | `ZipRead`: read members, and zip files nested inside zip files |
| `upnpwire.tmplfuncs` | `args`: build a name-to-value mapping from alternating arguments |

## Discovering devices

```python
from upnpwire.discovery import discover_devices

for found in discover_devices("urn:schemas-upnp-org:device:InternetGatewayDevice:1", 2):
    if found.err is not None:
        print("could not probe", found.location, found.err)
    else:
        print(found.root.device)
```

Each result is a `MaybeRootDevice`: either the root device that answered, or
the error met while fetching its description. A failure to send the search
itself raises.

## Looking at services

```python
from upnpwire.discovery import device_by_url

root = device_by_url("http://192.168.1.1:5000/rootDesc.xml")
for service in root.device.iter_services():
    print(service)

wan = root.device.find_service("urn:schemas-upnp-org:service:WANIPConnection:1")
scpd = wan[0].request_scpd()
for action in scpd.ordered_actions():
    print(action.name, [arg.name for arg in action.input_arguments()])
```

## Calling an action

```python
from upnpwire.soap import SOAPFaultError

client = wan[0].new_soap_client()
try:
    reply = client.perform_action(
        "urn:schemas-upnp-org:service:WANIPConnection:1",
        "GetExternalIPAddress",
        {},
    )
except SOAPFaultError as fault:
    print("device refused:", fault.error_code, fault.error_description)
```

`perform_action` returns the output arguments as a dict of strings. Argument
values are strings too; use `upnpwire.soaptypes` to convert:

```python
from upnpwire import soaptypes

soaptypes.marshal_ui2(8080)           # "8080"
soaptypes.unmarshal_boolean("yes")    # True
soaptypes.unmarshal_ui1("256")        # raises SoapTypeError
```

## Watching announcements

```python
from upnpwire.registry import new_server_and_registry

server, registry = new_server_and_registry()
registry.add_listener(lambda update: print(update.event_type, update.usn))
server.listen_and_serve()
```

## What the package does not do

- There are no ready-made typed clients for particular services (such as a
  WANIPConnection class with one method per action). Actions are called by
  name through `SOAPClient.perform_action`, with string arguments.
- There is no command-line program; everything is used from Python.
- Discovery searches over IPv4 only.