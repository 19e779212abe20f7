"""
Response rendering for authentication outcomes: XML, plain text, JSON, HTML.
"""

import html
import xml.etree.ElementTree as ET
from typing import List, Optional

from pydantic import BaseModel

from .. import __version__
from ..service import AuthOutcome


class ErrorModel(BaseModel):
    kind: str
    message: str


class AuthResponse(BaseModel):
    version: str
    valid: bool
    subject: str
    server_name: str
    ssh_port: int
    user: Optional[str] = None
    expires: Optional[str] = None
    errors: List[ErrorModel] = []


def to_model(outcome: AuthOutcome) -> AuthResponse:
    return AuthResponse(
        version=__version__,
        valid=outcome.valid,
        subject=outcome.subject,
        server_name=outcome.server_name,
        ssh_port=outcome.ssh_port,
        user=outcome.username,
        expires=outcome.valid_until,
        errors=[ErrorModel(**e.to_dict()) for e in outcome.errors],
    )


def render_xml(outcome: AuthOutcome) -> str:
    """
    XML document consumed by command line clients:

        <sshauth version="1.0.0">
          <errors length="1"><errmsg>...</errmsg></errors>
          <server><name>host</name><port>22</port></server>
          <auth><user>pool001</user><expires>...</expires><valid>true</valid></auth>
        </sshauth>
    """
    root = ET.Element("sshauth", version=__version__)

    if outcome.errors:
        errors = ET.SubElement(root, "errors", length=str(len(outcome.errors)))
        for entry in outcome.errors:
            ET.SubElement(errors, "errmsg").text = entry.message

    server = ET.SubElement(root, "server")
    if outcome.server_name:
        ET.SubElement(server, "name").text = outcome.server_name
    ET.SubElement(server, "port").text = str(outcome.ssh_port)

    auth = ET.SubElement(root, "auth")
    if outcome.username:
        ET.SubElement(auth, "user").text = outcome.username
    if outcome.valid_until:
        ET.SubElement(auth, "expires").text = outcome.valid_until
    ET.SubElement(auth, "valid").text = "true" if outcome.valid else "false"

    return '<?xml version="1.0"?>\n' + ET.tostring(root, encoding="unicode") + "\n"


def render_text(outcome: AuthOutcome) -> str:
    """Minimal "user@host:port" line."""
    return f"{outcome.username or ''}@{outcome.server_name}:{outcome.ssh_port}"


def suggested_command(template: str, outcome: AuthOutcome) -> str:
    return (
        template.replace("<PORT>", str(outcome.ssh_port))
        .replace("<USER>", outcome.username or "")
        .replace("<HOST>", outcome.server_name)
    )


_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Authentication to {server}</title>
<style>
body {{ font-family: Arial, helvetica, sans-serif; font-size: 11pt; }}
.imp {{ font-weight: bold; color: #0489B7; }}
.err {{ background-color: #ffdddd; color: red; padding: 10px; border-radius: 10px; }}
.cod {{ background-color: rgb(228,240,245); color: #204a87; padding: 10px;
        border-radius: 10px; font-family: monospace; white-space: nowrap; }}
.ver {{ color: #c0c0c0; font-size: 80%; font-style: italic; }}
</style>
</head>
<body>
<h1>Authentication to {server}</h1>
<p>You have been identified as:</p>
<p><span class="cod">{subject}</span></p>
{body}
<p class="ver">sshcertauth v{version}</p>
</body>
</html>
"""


def render_html(outcome: AuthOutcome, command_template: str = "") -> str:
    """Human readable page shown to browsers."""
    if outcome.errors:
        items = "\n".join(f"<li>{html.escape(m)}</li>" for m in outcome.error_messages)
        body = f'<div class="err"><ul>\n{items}\n</ul></div>'
    else:
        body = (
            "<p>User information:</p>\n<ul>\n"
            f'<li>Your username: <span class="imp">{html.escape(outcome.username)}</span></li>\n'
            "<li>Your authentication will remain valid until: "
            f'<span class="imp">{html.escape(outcome.valid_until)}</span></li>\n</ul>\n'
            f'<p>You can now login to <span class="imp">{html.escape(outcome.server_name)}</span>'
            " with your private key"
        )
        if command_template:
            command = suggested_command(command_template, outcome)
            body += f' using the following command:</p>\n<p><span class="cod">{html.escape(command)}</span></p>'
        else:
            body += ".</p>"
        body += "\n<p>No password will be asked.</p>"

    return _PAGE.format(
        server=html.escape(outcome.server_name),
        subject=html.escape(outcome.subject),
        body=body,
        version=__version__,
    )
