"""
Error taxonomy and result types for sshcertauth.

Components raise the exceptions below; the service layer turns them into
ErrorEntry values carried by an AuthOutcome.
"""

from dataclasses import dataclass
from typing import Optional


class CertAuthError(Exception):
    """Base class for every error surfaced to the caller."""

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def message(self) -> str:
        return str(self)


class ConfigurationError(CertAuthError):
    """Invalid or incomplete configuration detected at startup."""


class EncodingError(CertAuthError):
    """Malformed or empty RSA key material."""


class PoolExhausted(CertAuthError):
    """No free pool slot is left after pruning."""


class LockAcquisitionFailure(CertAuthError):
    """The exclusive lock on the mapping table could not be obtained."""


class StoreIOError(CertAuthError):
    """The mapping table could not be read or written."""


class IdentityResolutionFailure(CertAuthError):
    """A resolver could not map a certificate subject to a user."""


class StagerFailure(CertAuthError):
    """The external key installer failed."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


@dataclass(frozen=True)
class ErrorEntry:
    """A single human readable error, tagged with its taxonomy kind."""
    kind: str
    message: str

    @classmethod
    def from_exception(cls, exc: CertAuthError) -> "ErrorEntry":
        return cls(kind=exc.kind, message=exc.message)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}
