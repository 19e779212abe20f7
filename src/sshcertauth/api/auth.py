"""
Authentication endpoint.

The TLS terminator verifies the client certificate and forwards it, together
with its subject, in request headers. The endpoint always answers 200: the
body says whether access was granted.
"""

import logging
import re
from urllib.parse import unquote

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response

from ..service import AuthOutcome, CertAuthService
from .render import render_html, render_text, render_xml, to_model

logger = logging.getLogger(__name__)
router = APIRouter()

_PEM_RE = re.compile(
    r"-----BEGIN CERTIFICATE-----(?P<body>.*?)-----END CERTIFICATE-----", re.DOTALL
)


def normalize_forwarded_cert(value: str) -> str:
    """
    Rebuild a PEM certificate mangled by header forwarding.

    Handles URL-encoded certificates (nginx $ssl_client_escaped_cert) and
    certificates whose line breaks were turned into spaces or tabs.
    """
    if not value:
        return ""
    if "%" in value:
        value = unquote(value)

    match = _PEM_RE.search(value)
    if not match:
        return value

    body = re.sub(r"\s+", "", match.group("body"))
    lines = [body[i:i + 64] for i in range(0, len(body), 64)]
    return "-----BEGIN CERTIFICATE-----\n" + "\n".join(lines) + "\n-----END CERTIFICATE-----\n"


def _service(request: Request) -> CertAuthService:
    return request.app.state.service


def _respond(outcome: AuthOutcome, output: str, service: CertAuthService) -> Response:
    if output == "xml":
        # Plain "text/xml" with no charset parameter, clients compare it verbatim
        return Response(content=render_xml(outcome), headers={"Content-Type": "text/xml"})
    if output == "txt":
        return PlainTextResponse(render_text(outcome))
    if output == "json":
        return JSONResponse(to_model(outcome).model_dump())
    return HTMLResponse(render_html(outcome, service.config.suggested_command))


@router.get("/auth")
@router.get("/auth/")
def authenticate(
    request: Request,
    o: str = Query("html", description="Output format: xml, txt, json or html"),
):
    """Grant SSH access to the holder of the forwarded client certificate."""
    service = _service(request)
    config = service.config

    subject = request.headers.get(config.subject_header, "")
    pem_cert = normalize_forwarded_cert(request.headers.get(config.cert_header, ""))
    server_name = (
        request.headers.get(config.server_name_header)
        or config.server_name
        or request.url.hostname
        or ""
    )

    outcome = service.authenticate(subject, pem_cert, server_name=server_name)
    if not outcome.valid:
        logger.info(f"Authentication refused for {subject or '<no subject>'}: {outcome.error_messages}")

    return _respond(outcome, o.lower(), service)
