"""
Health API endpoints for sshcertauth.
"""

from fastapi import APIRouter, Request

from .. import __version__

router = APIRouter()


@router.get("/health")
def health(request: Request):
    """Basic health check endpoint."""
    service = request.app.state.service

    return {
        "status": "healthy",
        "service": "sshcertauth",
        "version": __version__,
        "resolver": service.get_status(),
    }
