"""
Configuration for sshcertauth.
"""

import os
import re
from dataclasses import dataclass
from typing import List, Optional

from .errors import ConfigurationError

# printf-style conversions, after "%%" escapes have been removed
_CONVERSION_RE = re.compile(r"%[-+ 0#]*\d*(?:\.\d+)?([a-zA-Z])")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return float(value)


@dataclass
class CertAuthConfig:
    """sshcertauth configuration settings."""

    # Server settings
    host: str = "127.0.0.1"
    port: int = 8443
    server_name: str = ""

    # SSH access advertised to clients
    ssh_port: int = 22
    ssh_key_dir: str = "/etc/ssh/authorized_keys.d"
    max_validity_seconds: int = 3600  # Ceiling applied to every grant
    suggested_command: str = "ssh -p <PORT> -i ~/.globus/userkey.pem <USER>@<HOST>"

    # Identity resolver: "pool" or "ldap"
    resolver: str = "pool"

    # Pool accounts
    map_file: str = "/var/lib/sshcertauth/pool.map"
    id_low: int = 0
    id_high: int = 99
    map_validity_seconds: int = 3600  # Mappings older than this are reclaimed
    user_format: str = "pool%03d"
    lock_timeout: Optional[float] = None  # None blocks until the lock is free

    # Directory lookup
    ldap_uri: str = "ldap://localhost:389"
    ldap_base_dn: str = ""
    ldap_subject_attribute: str = "subject"
    ldap_validity_seconds: int = 43200

    # Key stager
    stager_program: str = "/usr/libexec/sshcertauth/keys_keeper"
    stager_launcher: str = ""  # e.g. "sudo -n"
    stager_timeout: Optional[float] = None

    # Key encoding
    sign_guard: bool = False

    # Headers set by the TLS terminator
    cert_header: str = "X-SSL-Client-Cert"
    subject_header: str = "X-SSL-Client-S-DN"
    server_name_header: str = "X-SSL-Server-S-DN-CN"

    # Logging
    log_level: str = "INFO"
    log_file: str = ""

    @classmethod
    def from_env(cls) -> "CertAuthConfig":
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("SSHCERTAUTH_HOST", "127.0.0.1"),
            port=int(os.getenv("SSHCERTAUTH_PORT", "8443")),
            server_name=os.getenv("SSHCERTAUTH_SERVER_NAME", ""),
            ssh_port=int(os.getenv("SSHCERTAUTH_SSH_PORT", "22")),
            ssh_key_dir=os.getenv("SSHCERTAUTH_SSH_KEY_DIR", "/etc/ssh/authorized_keys.d"),
            max_validity_seconds=int(os.getenv("SSHCERTAUTH_MAX_VALIDITY", "3600")),
            suggested_command=os.getenv(
                "SSHCERTAUTH_SUGGESTED_COMMAND",
                "ssh -p <PORT> -i ~/.globus/userkey.pem <USER>@<HOST>",
            ),
            resolver=os.getenv("SSHCERTAUTH_RESOLVER", "pool"),
            map_file=os.getenv("SSHCERTAUTH_MAP_FILE", "/var/lib/sshcertauth/pool.map"),
            id_low=int(os.getenv("SSHCERTAUTH_ID_LOW", "0")),
            id_high=int(os.getenv("SSHCERTAUTH_ID_HIGH", "99")),
            map_validity_seconds=int(os.getenv("SSHCERTAUTH_MAP_VALIDITY", "3600")),
            user_format=os.getenv("SSHCERTAUTH_USER_FORMAT", "pool%03d"),
            lock_timeout=_env_float("SSHCERTAUTH_LOCK_TIMEOUT"),
            ldap_uri=os.getenv("SSHCERTAUTH_LDAP_URI", "ldap://localhost:389"),
            ldap_base_dn=os.getenv("SSHCERTAUTH_LDAP_BASE_DN", ""),
            ldap_subject_attribute=os.getenv("SSHCERTAUTH_LDAP_SUBJECT_ATTRIBUTE", "subject"),
            ldap_validity_seconds=int(os.getenv("SSHCERTAUTH_LDAP_VALIDITY", "43200")),
            stager_program=os.getenv("SSHCERTAUTH_STAGER_PROGRAM", "/usr/libexec/sshcertauth/keys_keeper"),
            stager_launcher=os.getenv("SSHCERTAUTH_STAGER_LAUNCHER", ""),
            stager_timeout=_env_float("SSHCERTAUTH_STAGER_TIMEOUT"),
            sign_guard=_env_bool("SSHCERTAUTH_SIGN_GUARD", False),
            cert_header=os.getenv("SSHCERTAUTH_CERT_HEADER", "X-SSL-Client-Cert"),
            subject_header=os.getenv("SSHCERTAUTH_SUBJECT_HEADER", "X-SSL-Client-S-DN"),
            server_name_header=os.getenv("SSHCERTAUTH_SERVER_NAME_HEADER", "X-SSL-Server-S-DN-CN"),
            log_level=os.getenv("SSHCERTAUTH_LOG_LEVEL", "INFO"),
            log_file=os.getenv("SSHCERTAUTH_LOG_FILE", ""),
        )

    def problems(self) -> List[str]:
        """Return every configuration problem found, empty when valid."""
        found = []

        if self.id_low < 0 or self.id_high < 0:
            found.append("Pool ID boundaries must be non-negative")
        if self.id_low > self.id_high:
            found.append(f"Pool ID range is empty: {self.id_low} > {self.id_high}")
        if self.map_validity_seconds < 0:
            found.append("Pool mapping validity must be non-negative")
        if self.max_validity_seconds <= 0:
            found.append("Maximum validity must be positive")
        if self.lock_timeout is not None and self.lock_timeout < 0:
            found.append("Lock timeout must be non-negative")
        if self.stager_timeout is not None and self.stager_timeout <= 0:
            found.append("Stager timeout must be positive")
        if self.resolver == "ldap" and not self.ldap_base_dn:
            found.append("LDAP resolver needs a base DN")

        conversions = _CONVERSION_RE.findall(self.user_format.replace("%%", ""))
        if conversions not in (["d"], ["i"], ["u"]):
            found.append(
                f"User format must contain exactly one integer placeholder: {self.user_format!r}"
            )

        return found

    def validate(self) -> "CertAuthConfig":
        """Raise ConfigurationError listing every problem; return self otherwise."""
        found = self.problems()
        if found:
            raise ConfigurationError("; ".join(found))
        return self
