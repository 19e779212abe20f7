"""
Command line client for sshcertauth.

Authenticates with the user's grid certificate, reads the XML answer and
prints (or runs) the ssh command to log in with the matching private key.
"""

import argparse
import logging
import os
import shlex
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import List, Optional

import requests
from rich.console import Console

logger = logging.getLogger(__name__)
console = Console(stderr=True)

DEFAULT_CERT = os.path.join("~", ".globus", "usercert.pem")
DEFAULT_KEY = os.path.join("~", ".globus", "userkey.pem")


@dataclass
class AccessInfo:
    """Login details returned by the server."""
    server: Optional[str] = None
    port: int = 22
    user: Optional[str] = None
    expires: Optional[str] = None
    valid: bool = False
    errors: List[str] = field(default_factory=list)

    def ssh_command(self, key_path: str) -> List[str]:
        return ["ssh", "-p", str(self.port), "-i", key_path, f"{self.user}@{self.server}"]


def parse_response(document: str) -> AccessInfo:
    """
    Parse the XML answer of the /auth endpoint.

    Only the first server element is considered.
    """
    try:
        root = ET.fromstring(document)
    except ET.ParseError as e:
        raise ValueError(f"Malformed XML response: {e}") from e

    info = AccessInfo()
    info.errors = [(e.text or "").strip() for e in root.findall("errors/errmsg")]

    server = root.find("server")
    if server is not None:
        info.server = server.findtext("name") or None
        port = server.findtext("port")
        if port and port.strip().isdigit():
            info.port = int(port)

    auth = root.find("auth")
    if auth is not None:
        info.user = auth.findtext("user") or None
        info.expires = auth.findtext("expires") or None
        info.valid = (auth.findtext("valid") or "").strip().lower() == "true"

    return info


def fetch_access(url: str, cert: str, key: str, ca_path=True, timeout: int = 30) -> AccessInfo:
    """
    Request access from the server with a client certificate.

    Args:
        url: Authentication endpoint, e.g. https://host/auth/
        cert: PEM certificate path
        key: PEM private key path
        ca_path: CA bundle or directory for server verification, True for system CAs
        timeout: Request timeout in seconds
    """
    logger.debug(f"Requesting access from {url} with certificate {cert}")
    response = requests.get(
        url,
        params={"o": "xml"},
        cert=(cert, key),
        verify=ca_path,
        timeout=timeout,
    )
    response.raise_for_status()

    content_type = response.headers.get("content-type", "")
    if "xml" not in content_type:
        raise ValueError(f"Unexpected content type: {content_type or '<none>'}")

    return parse_response(response.text)


def main(argv=None) -> int:
    """Authenticate and print the ssh command."""
    parser = argparse.ArgumentParser(description="Obtain SSH access with your X.509 certificate")
    parser.add_argument("url", help="Authentication URL, e.g. https://host/auth/")
    parser.add_argument("--cert", default=DEFAULT_CERT, help=f"Certificate (default: {DEFAULT_CERT})")
    parser.add_argument("--key", default=DEFAULT_KEY, help=f"Private key (default: {DEFAULT_KEY})")
    parser.add_argument("--ca-path", default=None, help="CA bundle or directory to verify the server")
    parser.add_argument("--exec", dest="run_ssh", action="store_true", help="Run ssh instead of printing it")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    cert = os.path.expanduser(args.cert)
    key = os.path.expanduser(args.key)

    try:
        info = fetch_access(args.url, cert, key, ca_path=args.ca_path or True)
    except (requests.RequestException, ValueError) as e:
        console.print(f"[bold red]Request failed:[/bold red] {e}")
        return 1

    for message in info.errors:
        console.print(f"[red]- {message}[/red]")

    if not (info.valid and info.server and info.user and info.port >= 0):
        console.print("[bold red]Cannot authenticate, sorry[/bold red]")
        return 1

    command = info.ssh_command(key)
    if info.expires:
        console.print(f"[green]Access granted until {info.expires}[/green]")

    if args.run_ssh:
        sys.stdout.flush()
        os.execvp(command[0], command)

    print(" ".join(shlex.quote(part) for part in command))
    return 0


if __name__ == "__main__":
    sys.exit(main())
