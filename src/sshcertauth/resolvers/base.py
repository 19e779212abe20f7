"""
Identity resolver contract.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Resolution:
    """Unix account granted to a certificate subject."""
    username: str
    validity_seconds: int = 0  # 0 lets the caller apply its maximum


class IdentityResolver(ABC):
    """Maps a certificate subject to a Unix account."""

    name: str = "base"

    @abstractmethod
    def resolve(self, subject: str) -> Resolution:
        """
        Resolve subject to an account.

        Raises:
            CertAuthError: IdentityResolutionFailure or a pool error, with a
                human readable message
        """

    def get_status(self) -> dict:
        """Resolver specific status for health reporting"""
        return {"resolver": self.name}
