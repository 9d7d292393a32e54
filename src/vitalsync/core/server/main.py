"""Entry point for the VitalSync MCP server (``vitalsync`` console script)."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from vitalsync.core.config.settings import Settings, get_settings
from vitalsync.core.server.app import create_app

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), None)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    if level_name.upper() != logging.getLevelName(level):
        logger.warning("Unknown VITALSYNC_LOG_LEVEL %r, using INFO", level_name)


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def _check_bind_address(settings: Settings) -> None:
    """Device pushes and insight reads are unauthenticated; keep them local."""
    if settings.vitalsync_allow_insecure_bind or _is_loopback_host(settings.vitalsync_host):
        return
    raise RuntimeError(
        f"Refusing to expose VitalSync on {settings.vitalsync_host}: the tool surface "
        "has no auth layer. Set VITALSYNC_ALLOW_INSECURE_BIND=true to override (unsafe)."
    )


def run() -> None:
    """Start the VitalSync MCP server with Streamable HTTP transport."""
    settings = get_settings()
    _configure_logging(settings.vitalsync_log_level)
    _check_bind_address(settings)

    mcp = create_app()
    logger.info(
        "Starting VitalSync on %s:%d (store=%s, pool=%d, scheme=%s, timeout=%gs)",
        settings.vitalsync_host,
        settings.vitalsync_port,
        settings.db_path,
        settings.db_pool_size,
        settings.score_weight_scheme,
        settings.insights_timeout_seconds,
    )
    mcp.run(
        transport="streamable-http",
        host=settings.vitalsync_host,
        port=settings.vitalsync_port,
    )


if __name__ == "__main__":
    run()
