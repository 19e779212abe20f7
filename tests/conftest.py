"""
Shared fixtures: throwaway certificates, installer scripts and configuration.
"""

import datetime
import os
import stat

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from sshcertauth.config import CertAuthConfig

SUBJECT = "/C=IT/O=INFN/OU=Personal Certificate/L=Torino/CN=Jane Doe"


def _self_signed_pem(key, common_name: str) -> str:
    name = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "IT"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "INFN"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_cert_pem(rsa_key):
    return _self_signed_pem(rsa_key, "Jane Doe")


@pytest.fixture(scope="session")
def ec_cert_pem():
    return _self_signed_pem(ec.generate_private_key(ec.SECP256R1()), "Elliptic Eve")


@pytest.fixture
def make_script(tmp_path):
    """Write an executable /bin/sh script and return its path."""
    def _make(body: str, name: str = "keys_keeper") -> str:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)
    return _make


@pytest.fixture
def recording_stager(tmp_path, make_script):
    """Installer that records its arguments and stdin, then succeeds."""
    args_file = tmp_path / "args.txt"
    stdin_file = tmp_path / "stdin.txt"
    program = make_script(f'echo "$@" > "{args_file}"\ncat > "{stdin_file}"\nexit 0')
    return program, args_file, stdin_file


@pytest.fixture
def config(tmp_path, recording_stager):
    program, _, _ = recording_stager
    return CertAuthConfig(
        server_name="ssh.example.org",
        ssh_port=2222,
        ssh_key_dir=str(tmp_path / "keys"),
        max_validity_seconds=3600,
        resolver="pool",
        map_file=str(tmp_path / "pool.map"),
        id_low=0,
        id_high=2,
        map_validity_seconds=100,
        user_format="pool%03d",
        lock_timeout=5.0,
        stager_program=program,
    )


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("SSHCERTAUTH_"):
            monkeypatch.delenv(name, raising=False)
