"""
sshcertauth - short-lived SSH access for X.509 certificate holders.

This package handles:
- Conversion of certificate RSA keys to OpenSSH public keys
- Binding certificate subjects to pool accounts or directory users
- Staging keys through the privileged installer
- The HTTP endpoint behind the TLS terminator
"""

__version__ = "1.0.0"
