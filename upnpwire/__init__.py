"""UPnP client library: SSDP discovery, device and service descriptions, and SOAP actions."""

__version__ = "0.1.0"