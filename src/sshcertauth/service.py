"""
Certificate to SSH access service.

Ties the pieces together for one request: resolve the subject to a Unix
account, convert the certificate key to an SSH key line carrying its expiry,
and stage it for that account.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from .config import CertAuthConfig
from .errors import CertAuthError, ConfigurationError, ErrorEntry, StagerFailure
from .resolvers import IdentityResolver, build_resolver
from .ssh import KeyStager, encode_material, extract_public_key, fingerprint

logger = logging.getLogger(__name__)

# e.g. "Dec 11 2011 15:27:35 +0000"
DATETIME_FORMAT = "%b %d %Y %H:%M:%S +0000"


def format_expiry(timestamp: int) -> str:
    """Format a unix timestamp the way it is shown in key comments (UTC)."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime(DATETIME_FORMAT)


def cap_validity(validity_seconds: int, max_validity_seconds: int) -> int:
    """Apply the validity ceiling; zero or negative means "the maximum"."""
    if validity_seconds <= 0 or validity_seconds > max_validity_seconds:
        return max_validity_seconds
    return validity_seconds


@dataclass(frozen=True)
class AuthGrant:
    """SSH access granted to a certificate holder."""
    username: str
    expires_at: int
    valid_until: str
    ssh_key: str


@dataclass(frozen=True)
class AuthOutcome:
    """
    Result of one authentication request.

    Exactly one of grant and errors is set: a successful outcome carries a
    grant, a failed one a non-empty tuple of ErrorEntry. username is kept on
    failures too when the resolver got that far.
    """
    subject: str
    server_name: str
    ssh_port: int
    grant: Optional[AuthGrant] = None
    errors: Tuple[ErrorEntry, ...] = field(default_factory=tuple)
    username: Optional[str] = None

    def __post_init__(self):
        if (self.grant is None) == (not self.errors):
            raise ValueError("AuthOutcome needs either a grant or a non-empty error list")

    @property
    def valid(self) -> bool:
        return self.grant is not None

    @property
    def valid_until(self) -> Optional[str]:
        return self.grant.valid_until if self.grant else None

    @property
    def error_messages(self) -> List[str]:
        return [e.message for e in self.errors]


class CertAuthService:
    """Runs the resolve, encode and stage steps for a certificate holder."""

    def __init__(
        self,
        config: CertAuthConfig,
        resolver: IdentityResolver,
        stager: KeyStager,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.resolver = resolver
        self.stager = stager
        self.clock = clock

    @classmethod
    def from_config(cls, config: CertAuthConfig) -> "CertAuthService":
        """Build the service and its collaborators from configuration."""
        config.validate()
        resolver = build_resolver(config)
        stager = KeyStager(
            config.stager_program,
            launcher=config.stager_launcher,
            timeout=config.stager_timeout,
        )
        logger.info(f"Using {resolver.name} resolver, key stager {config.stager_program}")
        return cls(config, resolver, stager)

    def authenticate(self, subject: str, pem_cert: str, server_name: str = "") -> AuthOutcome:
        """
        Grant SSH access to the holder of pem_cert.

        Args:
            subject: Certificate subject as forwarded by the TLS terminator
            pem_cert: Verified client certificate in PEM format
            server_name: Host name advertised to the client

        Returns:
            AuthOutcome with a grant, or with every error collected on the way
        """
        server_name = server_name or self.config.server_name

        def outcome(**kwargs) -> AuthOutcome:
            return AuthOutcome(
                subject=subject, server_name=server_name, ssh_port=self.config.ssh_port, **kwargs
            )

        if not subject or not pem_cert:
            return outcome(errors=(ErrorEntry(
                kind=ConfigurationError.__name__,
                message="Client certificate and subject must be forwarded by the TLS terminator",
            ),))

        # Who is it?
        try:
            resolution = self.resolver.resolve(subject)
        except CertAuthError as e:
            logger.warning(f"Cannot resolve {subject}: {e}")
            return outcome(errors=(
                ErrorEntry.from_exception(e),
                ErrorEntry(kind=e.kind, message=f"Can't get user from {self.resolver.name} plugin"),
            ))

        username = resolution.username
        validity = cap_validity(resolution.validity_seconds, self.config.max_validity_seconds)
        expires_at = int(self.clock()) + validity
        valid_until = format_expiry(expires_at)

        # Key in SSH format, expiry as comment
        try:
            material = extract_public_key(pem_cert)
            ssh_key = encode_material(
                material, f"Valid until: {valid_until}", sign_guard=self.config.sign_guard
            )
        except CertAuthError as e:
            logger.warning(f"Cannot convert certificate key of {subject}: {e}")
            return outcome(username=username, errors=(
                ErrorEntry.from_exception(e),
                ErrorEntry(kind=e.kind, message="Cannot extract pubkey in SSH format from PEM certificate"),
            ))

        try:
            self.stager.install(ssh_key, username, self.config.ssh_key_dir)
        except StagerFailure as e:
            errors = []
            if e.stderr:
                errors.append(ErrorEntry(kind=e.kind, message=f"Key stager: {e.stderr}"))
            errors.append(ErrorEntry.from_exception(e))
            errors.append(ErrorEntry(kind=e.kind, message="Cannot allow public key"))
            return outcome(username=username, errors=tuple(errors))

        logger.info(f"Granted {username} to {subject} until {valid_until} ({fingerprint(ssh_key)})")
        return outcome(
            username=username,
            grant=AuthGrant(
                username=username,
                expires_at=expires_at,
                valid_until=valid_until,
                ssh_key=ssh_key,
            ),
        )

    def get_status(self) -> dict:
        return self.resolver.get_status()
