import pytest
import requests
import responses

from upnpwire.soap import (
    SOAPClient,
    SOAPError,
    SOAPFaultError,
    encode_request_action,
    escape_xml_text,
)

ENDPOINT = "http://example.com/soap"
PREFIX = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" '
    's:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/"><s:Body>'
)
SUFFIX = "</s:Body></s:Envelope>"

OK_BODY = """
    <s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/">
        <s:Body>
            <u:myactionResponse xmlns:u="mynamespace">
                <A>valueA</A>
                <B>valueB</B>
            </u:myactionResponse>
        </s:Body>
    </s:Envelope>
"""


def test_action_inputs():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, ENDPOINT, status=200, body=OK_BODY)
        client = SOAPClient(ENDPOINT)
        out = client.perform_action(
            "mynamespace",
            "myaction",
            {"Foo": "foo", "bar": "bar", "Baz": 'quoted="baz"'},
        )
        request = rsps.calls[0].request
    want_body = (
        PREFIX
        + '<u:myaction xmlns:u="mynamespace">'
        + "<Foo>foo</Foo>"
        + "<bar>bar</bar>"
        + '<Baz>quoted="baz"</Baz>'
        + "</u:myaction>"
        + SUFFIX
    )
    assert request.body == want_body.encode("utf-8")
    assert request.headers["SOAPACTION"] == '"mynamespace#myaction"'
    assert out == {"A": "valueA", "B": "valueB"}


def test_upnp_error():
    detail_inner = (
        "\n\t\t\t\t\t<UPnPError xmlns=\"urn:schemas-upnp-org:control-1-0\">"
        "\n\t\t\t\t\t\t<errorCode>725</errorCode>"
        "\n\t\t\t\t\t\t<errorDescription>OnlyPermanentLeasesSupported</errorDescription>"
        "\n\t\t\t\t\t</UPnPError>\n\t\t\t\t"
    )
    body = (
        '\n\t<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" '
        's:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">'
        "\n\t\t<s:Body>\n\t\t\t<s:Fault>"
        "\n\t\t\t\t<faultcode>s:Client</faultcode>"
        "\n\t\t\t\t<faultstring>UPnPError</faultstring>"
        "\n\t\t\t\t<detail>" + detail_inner + "</detail>"
        "\n\t\t\t</s:Fault>\n\t\t</s:Body>\n\t</s:Envelope>"
    )
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, ENDPOINT, status=500, body=body)
        client = SOAPClient(ENDPOINT)
        with pytest.raises(SOAPFaultError) as info:
            client.perform_action("mynamespace", "myaction", None)
    err = info.value
    assert err.fault_code == "s:Client"
    assert err.fault_string == "UPnPError"
    assert err.error_code == 725
    assert err.error_description == "OnlyPermanentLeasesSupported"
    assert err.detail_raw.lower() == detail_inner.lower()
    assert str(err).startswith("SOAP fault. Code: s:Client | Explanation: UPnPError")


@pytest.mark.parametrize(
    "text, want",
    [
        ("", ""),
        ("abc123", "abc123"),
        ("<foo>&", "&lt;foo&gt;&amp;"),
        ("\"foo'", "\"foo'"),
    ],
)
def test_escape_xml_text(text, want):
    assert escape_xml_text(text) == want


def test_encode_escapes_action_name_and_namespace():
    body = encode_request_action('ns"x', "a<b", None).decode("utf-8")
    assert '<u:a&lt;b xmlns:u="ns&#34;x">' in body
    assert body.endswith("</u:a&lt;b>" + SUFFIX)


def test_encode_without_arguments():
    body = encode_request_action("mynamespace", "myaction")
    assert body == (
        PREFIX + '<u:myaction xmlns:u="mynamespace"></u:myaction>' + SUFFIX
    ).encode("utf-8")


def test_encode_rejects_non_string_argument():
    with pytest.raises(SOAPError, match="not of type string"):
        encode_request_action("ns", "act", {"Count": 3})


def test_encode_rejects_empty_argument_name():
    with pytest.raises(SOAPError):
        encode_request_action("ns", "act", [("", "value")])


def test_http_error_without_body():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, ENDPOINT, status=500, body="")
        with pytest.raises(SOAPError, match="HTTP 500"):
            SOAPClient(ENDPOINT).perform_action("ns", "act")


def test_http_error_with_envelope_without_fault():
    body = (
        '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/">'
        "<s:Body></s:Body></s:Envelope>"
    )
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, ENDPOINT, status=503, body=body)
        with pytest.raises(SOAPError, match="HTTP 503") as info:
            SOAPClient(ENDPOINT).perform_action("ns", "act")
    assert not isinstance(info.value, SOAPFaultError)


def test_undecodable_body():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, ENDPOINT, status=200, body="not xml at all")
        with pytest.raises(SOAPError, match="decoding"):
            SOAPClient(ENDPOINT).perform_action("ns", "act")


def test_wrong_root_element():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, ENDPOINT, status=200, body="<other/>")
        with pytest.raises(SOAPError, match="Envelope"):
            SOAPClient(ENDPOINT).perform_action("ns", "act")


def test_connection_failure():
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST, ENDPOINT, body=requests.ConnectionError("refused")
        )
        with pytest.raises(SOAPError, match="error performing SOAP HTTP request"):
            SOAPClient(ENDPOINT).perform_action("ns", "act")