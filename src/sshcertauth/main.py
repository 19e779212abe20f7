"""
sshcertauth - FastAPI application entry point.

Run standalone with ``sshcertauth-server`` or under uvicorn workers with
``uvicorn --factory sshcertauth.main:create_app``.
"""

import argparse
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
import uvicorn

from . import __version__
from .api import auth_router, health_router
from .config import CertAuthConfig
from .errors import ConfigurationError
from .service import CertAuthService

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def create_app(config: Optional[CertAuthConfig] = None,
               service: Optional[CertAuthService] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Settings, read from the environment when omitted
        service: Prebuilt service, built from config when omitted
    """
    if service is None:
        config = config or CertAuthConfig.from_env()
        service = CertAuthService.from_config(config)
    config = service.config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events."""
        file_handler = None
        if config.log_file:
            file_handler = logging.FileHandler(config.log_file)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logging.getLogger().addHandler(file_handler)
            logger.info(f"Logging to file: {config.log_file}")

        logger.info("=" * 60)
        logger.info(f"sshcertauth v{__version__}")
        logger.info("=" * 60)
        logger.info(f"Resolver: {service.resolver.name}")
        logger.info(f"SSH: {config.server_name or '<request host>'}:{config.ssh_port}")
        logger.info(f"Key directory: {config.ssh_key_dir}")
        logger.info(f"Maximum validity: {config.max_validity_seconds}s")
        logger.info("=" * 60)

        yield

        logger.info("sshcertauth stopped")
        if file_handler:
            logging.getLogger().removeHandler(file_handler)
            file_handler.close()

    app = FastAPI(
        title="sshcertauth",
        description="Short-lived SSH access for X.509 certificate holders",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service

    app.include_router(auth_router)
    app.include_router(health_router)
    return app


def main(argv=None) -> int:
    """Run the sshcertauth service."""
    parser = argparse.ArgumentParser(description="sshcertauth service")
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: SSHCERTAUTH_HOST or 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to run the service on (default: SSHCERTAUTH_PORT or 8443)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: SSHCERTAUTH_LOG_LEVEL or INFO)"
    )
    args = parser.parse_args(argv)

    config = CertAuthConfig.from_env()
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.log_level:
        config.log_level = args.log_level

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )

    try:
        app = create_app(config)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    logger.info(f"Starting sshcertauth on {config.host}:{config.port}")

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
