import pytest
import requests

from sshcertauth import client
from sshcertauth.api.render import render_xml
from sshcertauth.errors import ErrorEntry
from sshcertauth.service import AuthGrant, AuthOutcome

SERVER_RESPONSE = """<?xml version="1.0"?>
<sshauth version="0.1">
  <server><name>alice-ssh.cern.ch</name><port>22</port></server>
  <auth><user>alicesgm</user><expires>Dec 11 2011 15:27:35 +0000</expires><valid>true</valid></auth>
</sshauth>
"""


class FakeResponse:
    def __init__(self, text, content_type="text/xml"):
        self.text = text
        self.headers = {"content-type": content_type}

    def raise_for_status(self):
        pass


def _granted():
    return AuthOutcome(
        subject="CN=Jane Doe",
        server_name="ssh.example.org",
        ssh_port=2222,
        username="pool004",
        grant=AuthGrant(
            username="pool004",
            expires_at=1323617255,
            valid_until="Dec 11 2011 15:27:35 +0000",
            ssh_key="ssh-rsa AAAA",
        ),
    )


def _refused():
    return AuthOutcome(
        subject="CN=Jane Doe",
        server_name="ssh.example.org",
        ssh_port=2222,
        errors=(
            ErrorEntry(kind="PoolExhausted", message="No pool accounts are available at this time"),
            ErrorEntry(kind="PoolExhausted", message="Can't get user from pool plugin"),
        ),
    )


def test_parse_granted_response():
    info = client.parse_response(render_xml(_granted()))

    assert info.valid
    assert info.server == "ssh.example.org"
    assert info.port == 2222
    assert info.user == "pool004"
    assert info.expires == "Dec 11 2011 15:27:35 +0000"
    assert info.errors == []
    assert info.ssh_command("/k") == ["ssh", "-p", "2222", "-i", "/k", "pool004@ssh.example.org"]


def test_parse_refused_response():
    info = client.parse_response(render_xml(_refused()))

    assert not info.valid
    assert info.user is None
    assert info.errors == [
        "No pool accounts are available at this time",
        "Can't get user from pool plugin",
    ]


@pytest.mark.parametrize("root", ["sshauth", "sshcertauth"])
def test_parse_root_element_names(root):
    info = client.parse_response(SERVER_RESPONSE.replace("sshauth", root))

    assert info.valid
    assert info.user == "alicesgm"
    assert info.server == "alice-ssh.cern.ch"


def test_parse_malformed_response():
    with pytest.raises(ValueError, match="Malformed XML"):
        client.parse_response("<sshcertauth><auth>")


def test_fetch_access_sends_certificate(monkeypatch):
    calls = {}

    def fake_get(url, **kwargs):
        calls["url"] = url
        calls.update(kwargs)
        return FakeResponse(render_xml(_granted()))

    monkeypatch.setattr(client.requests, "get", fake_get)

    info = client.fetch_access("https://ssh.example.org/auth/", "/c.pem", "/k.pem", ca_path="/etc/grid-security/certificates")

    assert info.user == "pool004"
    assert calls["params"] == {"o": "xml"}
    assert calls["cert"] == ("/c.pem", "/k.pem")
    assert calls["verify"] == "/etc/grid-security/certificates"


def test_fetch_access_rejects_html(monkeypatch):
    monkeypatch.setattr(client.requests, "get", lambda url, **kw: FakeResponse("<html/>", "text/html"))

    with pytest.raises(ValueError, match="content type"):
        client.fetch_access("https://ssh.example.org/auth/", "/c.pem", "/k.pem")


def test_main_prints_ssh_command(monkeypatch, capsys):
    monkeypatch.setattr(client.requests, "get", lambda url, **kw: FakeResponse(render_xml(_granted())))

    code = client.main(["https://ssh.example.org/auth/", "--key", "/keys/user key.pem"])

    assert code == 0
    out = capsys.readouterr().out
    assert out.strip() == "ssh -p 2222 -i '/keys/user key.pem' pool004@ssh.example.org"


def test_main_refused(monkeypatch, capsys):
    monkeypatch.setattr(client.requests, "get", lambda url, **kw: FakeResponse(render_xml(_refused())))

    code = client.main(["https://ssh.example.org/auth/"])

    assert code == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Cannot authenticate, sorry" in captured.err


def test_main_request_error(monkeypatch, capsys):
    def refuse(url, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(client.requests, "get", refuse)

    assert client.main(["https://ssh.example.org/auth/"]) == 1
    assert "Request failed" in capsys.readouterr().err
