"""
Directory resolver: looks the certificate subject up in LDAP.

Exactly one entry below the base DN must carry the subject in the configured
attribute; its uid is the Unix account name.
"""

import logging
from typing import Callable, Optional

from ldap3 import Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from ..config import CertAuthConfig
from ..errors import IdentityResolutionFailure
from .base import IdentityResolver, Resolution

logger = logging.getLogger(__name__)


class LdapIdentityResolver(IdentityResolver):
    """Resolves subjects to accounts with an anonymous LDAP search."""

    name = "ldap"

    def __init__(
        self,
        uri: str,
        base_dn: str,
        subject_attribute: str = "subject",
        validity_seconds: int = 43200,
        connect_timeout: int = 10,
        connection_factory: Optional[Callable[[], Connection]] = None,
    ):
        """
        Args:
            uri: Directory server, e.g. "ldap://aliendb06a.cern.ch:8389"
            base_dn: Search base, e.g. "ou=People,o=alice,dc=cern,dc=ch"
            subject_attribute: Attribute holding the certificate subject
            validity_seconds: Validity granted to resolved users
            connect_timeout: Seconds allowed to open the connection
            connection_factory: Returns a bound Connection, defaults to an
                anonymous bind on uri
        """
        self.uri = uri
        self.base_dn = base_dn
        self.subject_attribute = subject_attribute
        self.validity_seconds = validity_seconds
        self.connect_timeout = connect_timeout
        self._connection_factory = connection_factory or self._connect

    @classmethod
    def from_config(cls, config: CertAuthConfig) -> "LdapIdentityResolver":
        return cls(
            uri=config.ldap_uri,
            base_dn=config.ldap_base_dn,
            subject_attribute=config.ldap_subject_attribute,
            validity_seconds=config.ldap_validity_seconds,
        )

    def _connect(self) -> Connection:
        server = Server(self.uri, connect_timeout=self.connect_timeout)
        return Connection(server, auto_bind=True, read_only=True)

    def search_filter(self, subject: str) -> str:
        return f"({self.subject_attribute}={escape_filter_chars(subject)})"

    def resolve(self, subject: str) -> Resolution:
        try:
            conn = self._connection_factory()
        except LDAPException as e:
            logger.error(f"Cannot contact LDAP server {self.uri}: {e}")
            raise IdentityResolutionFailure("Can't contact LDAP server") from e

        try:
            try:
                found = conn.search(self.base_dn, self.search_filter(subject), attributes=["uid"])
            except LDAPException as e:
                logger.error(f"LDAP search for {subject} failed: {e}")
                raise IdentityResolutionFailure("LDAP search failed") from e

            entries = list(conn.entries) if found else []
            if len(entries) != 1:
                logger.warning(f"LDAP returned {len(entries)} entries for {subject}")
                raise IdentityResolutionFailure("User not found in LDAP")

            uids = entries[0].entry_attributes_as_dict.get("uid") or []
            if not uids:
                raise IdentityResolutionFailure("Can't find username in LDAP response")
        finally:
            conn.unbind()

        username = str(uids[0])
        logger.info(f"Subject {subject} mapped to LDAP user {username}")
        return Resolution(username=username, validity_seconds=self.validity_seconds)

    def get_status(self) -> dict:
        status = super().get_status()
        status["ldap_uri"] = self.uri
        return status
