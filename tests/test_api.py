import xml.etree.ElementTree as ET
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient

from sshcertauth import __version__
from sshcertauth.api.auth import normalize_forwarded_cert
from sshcertauth.main import create_app
from sshcertauth.service import CertAuthService

from conftest import SUBJECT


@pytest.fixture
def client(config):
    app = create_app(service=CertAuthService.from_config(config))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def cert_headers(rsa_cert_pem):
    return {
        "X-SSL-Client-Cert": quote(rsa_cert_pem),
        "X-SSL-Client-S-DN": SUBJECT,
    }


def test_normalize_url_encoded_cert(rsa_cert_pem):
    assert normalize_forwarded_cert(quote(rsa_cert_pem)) == rsa_cert_pem


def test_normalize_space_separated_cert(rsa_cert_pem):
    flattened = rsa_cert_pem.replace("\n", " ")
    assert normalize_forwarded_cert(flattened) == rsa_cert_pem


def test_normalize_passes_through_non_pem():
    assert normalize_forwarded_cert("") == ""
    assert normalize_forwarded_cert("not a certificate") == "not a certificate"


def test_auth_xml(client, cert_headers, config):
    response = client.get("/auth", params={"o": "xml"}, headers=cert_headers)

    assert response.status_code == 200
    assert response.headers["content-type"] == "text/xml"
    root = ET.fromstring(response.content)
    assert root.tag == "sshauth"
    assert root.get("version") == __version__
    assert root.find("errors") is None
    assert root.findtext("server/name") == "ssh.example.org"
    assert root.findtext("server/port") == "2222"
    assert root.findtext("auth/user") == "pool000"
    assert root.findtext("auth/expires").endswith("+0000")
    assert root.findtext("auth/valid") == "true"


def test_auth_txt(client, cert_headers):
    response = client.get("/auth/", params={"o": "txt"}, headers=cert_headers)

    assert response.status_code == 200
    assert response.text == "pool000@ssh.example.org:2222"


def test_auth_json(client, cert_headers, recording_stager):
    _, _, stdin_file = recording_stager

    body = client.get("/auth", params={"o": "json"}, headers=cert_headers).json()

    assert body["valid"] is True
    assert body["user"] == "pool000"
    assert body["subject"] == SUBJECT
    assert body["errors"] == []
    assert body["expires"] in stdin_file.read_text()


def test_auth_html_is_default(client, cert_headers):
    response = client.get("/auth", headers=cert_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert "pool000" in response.text
    assert "ssh -p 2222 -i ~/.globus/userkey.pem pool000@ssh.example.org" in response.text


def test_same_subject_keeps_account(client, cert_headers):
    first = client.get("/auth", params={"o": "txt"}, headers=cert_headers).text
    second = client.get("/auth", params={"o": "txt"}, headers=cert_headers).text

    assert first == second


def test_missing_headers_are_reported(client):
    response = client.get("/auth", params={"o": "xml"})

    assert response.status_code == 200
    root = ET.fromstring(response.content)
    assert root.findtext("auth/valid") == "false"
    assert root.find("auth/user") is None
    errors = root.find("errors")
    assert errors.get("length") == "1"
    assert "forwarded" in errors.findtext("errmsg")


def test_errors_in_html_are_escaped(client):
    response = client.get("/auth", headers={"X-SSL-Client-S-DN": "<b>CN=x</b>"})

    assert "&lt;b&gt;CN=x&lt;/b&gt;" in response.text
    assert "<b>CN=x</b>" not in response.text
    assert 'class="err"' in response.text


def test_server_name_header(client, cert_headers):
    headers = dict(cert_headers, **{"X-SSL-Server-S-DN-CN": "login.example.org"})

    response = client.get("/auth", params={"o": "txt"}, headers=headers)

    assert response.text == "pool000@login.example.org:2222"


def test_bad_certificate(client):
    headers = {"X-SSL-Client-Cert": "garbage", "X-SSL-Client-S-DN": SUBJECT}

    body = client.get("/auth", params={"o": "json"}, headers=headers).json()

    assert body["valid"] is False
    assert body["user"] == "pool000"
    assert body["errors"][0]["kind"] == "EncodingError"


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["version"] == __version__
    assert body["resolver"]["resolver"] == "pool"
    assert body["resolver"]["pool"]["capacity"] == 3
