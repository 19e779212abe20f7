"""
Identity resolvers - map a certificate subject to a Unix account.

Resolvers are registered by configuration key and picked once at startup.
"""

from typing import Callable, Dict

from ..config import CertAuthConfig
from ..errors import ConfigurationError
from .base import IdentityResolver, Resolution
from .pool import PoolIdentityResolver
from .ldap import LdapIdentityResolver

ResolverFactory = Callable[[CertAuthConfig], IdentityResolver]

RESOLVERS: Dict[str, ResolverFactory] = {
    PoolIdentityResolver.name: PoolIdentityResolver.from_config,
    LdapIdentityResolver.name: LdapIdentityResolver.from_config,
}


def register_resolver(name: str, factory: ResolverFactory) -> None:
    """Make a resolver selectable through the "resolver" setting."""
    RESOLVERS[name] = factory


def build_resolver(config: CertAuthConfig) -> IdentityResolver:
    """Instantiate the resolver named by config.resolver."""
    factory = RESOLVERS.get(config.resolver)
    if factory is None:
        known = ", ".join(sorted(RESOLVERS))
        raise ConfigurationError(f"Unknown resolver {config.resolver!r} (known: {known})")
    return factory(config)


__all__ = [
    "IdentityResolver", "Resolution",
    "PoolIdentityResolver", "LdapIdentityResolver",
    "RESOLVERS", "register_resolver", "build_resolver",
]
