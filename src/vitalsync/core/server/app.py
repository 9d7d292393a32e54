"""VitalSync MCP server application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from vitalsync.core.config.settings import get_settings
from vitalsync.core.storage.database import MetricDatabase
from vitalsync.core.storage.encryption import EncryptionError, FieldEncryptor
from vitalsync.core.storage.repository import MetricRepository
from vitalsync.domains.health.domain_logic.insight_synthesizer import InsightSynthesizer
from vitalsync.domains.health.tools.ingest_tools import register_ingest_tools
from vitalsync.domains.health.tools.insight_tools import register_insight_tools

logger = logging.getLogger(__name__)


def create_app(
    *,
    repository_override: MetricRepository | None = None,
) -> FastMCP:
    """Create and configure the VitalSync MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Opens the metric store and its connection pool
    3. Builds the insight synthesizer with the configured weight scheme
    4. Registers ingestion and insight tools
    """
    settings = get_settings()

    # --- Server instance ---
    server = FastMCP(
        "VitalSync",
        instructions=(
            "Health telemetry server. Devices push metric snapshots "
            "(activity, heart, sleep, body, vitals); insight tools derive "
            "trends, a health score, streaks, and recommendations from them."
        ),
    )

    # --- Initialize storage ---
    if repository_override is not None:
        repository = repository_override
    else:
        encryptor: FieldEncryptor | None = None
        if settings.encryption_key:
            try:
                encryptor = FieldEncryptor(settings.encryption_key)
            except EncryptionError as exc:
                logger.error("Invalid ENCRYPTION_KEY: %s", exc)
                logger.warning("Continuing without the raw payload archive")
        else:
            logger.info(
                "No ENCRYPTION_KEY configured; raw device payloads will not be archived."
            )
        database = MetricDatabase(settings.db_path, pool_size=settings.db_pool_size)
        database.initialize()
        repository = MetricRepository(database, encryptor)
        logger.info(
            "Metric store initialized: %s (schema v%d)",
            settings.db_path,
            database.get_schema_version(),
        )

    synthesizer = InsightSynthesizer(
        repository,
        weight_scheme=settings.score_weight_scheme,
        timeout_seconds=settings.insights_timeout_seconds,
        step_streak_threshold=settings.step_streak_threshold,
        sleep_streak_threshold=settings.sleep_streak_threshold,
    )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "VitalSync",
            "version": "0.1.0",
            "score_weight_scheme": synthesizer.weight_scheme,
            "raw_archive_enabled": repository.archives_raw_payloads,
            "snapshots_stored": repository.count_snapshots(),
        }

    register_ingest_tools(server, repository)
    logger.info("Ingestion tools registered")

    register_insight_tools(server, synthesizer)
    logger.info("Insight tools registered (weight scheme: %s)", synthesizer.weight_scheme)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
