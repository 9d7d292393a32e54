"""MCP tools for device ingestion and the raw payload archive."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from vitalsync.core.storage.encryption import EncryptionError
from vitalsync.core.storage.models import CATEGORY_COLUMNS
from vitalsync.core.storage.repository import RepositoryError

if TYPE_CHECKING:
    from vitalsync.core.storage.repository import MetricRepository

logger = logging.getLogger(__name__)


def register_ingest_tools(mcp: FastMCP, repository: MetricRepository) -> None:
    """Register device ingestion tools on the MCP server."""

    @mcp.tool
    async def record_metrics(
        ctx: Context,
        user_id: str,
        category: str,
        data: dict[str, Any],
        device_name: str = "UnknownDevice",
        day: str | None = None,
    ) -> str:
        """Store a metric snapshot pushed by a device.

        Args:
            user_id: Identifier issued to the user at registration.
            category: activity, heart, sleep, body, vitals, health, or health_history.
            data: Device payload, e.g. {"steps": 8500, "exerciseMinutes": 35}.
            device_name: Label of the pushing device.
            day: Optional day label sent by the device.
        """
        if category not in CATEGORY_COLUMNS:
            return json.dumps({
                "success": False,
                "error": f"Unknown category: {category!r}",
                "validCategories": list(CATEGORY_COLUMNS),
            })
        try:
            snapshot_id = await repository.save_snapshot(
                str(user_id), category, data, device_name=device_name, day_label=day
            )
        except (RepositoryError, EncryptionError) as exc:
            logger.exception("Failed to store %s snapshot from %s", category, device_name)
            return json.dumps({"success": False, "error": str(exc)})

        return json.dumps({"success": True, "endpoint": category, "id": snapshot_id})

    @mcp.tool
    async def raw_device_data(
        ctx: Context,
        endpoint: str,
        device_name: str,
        limit: int = 50,
    ) -> str:
        """List the raw payloads a device pushed to an endpoint, newest first.

        Args:
            endpoint: Category the payloads were pushed to.
            device_name: Label of the device.
            limit: Maximum number of payloads.
        """
        if not repository.archives_raw_payloads:
            return json.dumps({
                "success": False,
                "error": "Raw payload archive is disabled (no ENCRYPTION_KEY configured).",
            })
        try:
            payloads = await repository.get_raw_payloads(endpoint, device_name, limit=limit)
        except (RepositoryError, EncryptionError) as exc:
            logger.exception("Failed to read raw payloads for %s/%s", endpoint, device_name)
            return json.dumps({"success": False, "error": str(exc)})

        return json.dumps({
            "success": True,
            "payloads": [
                {
                    "id": p.id,
                    "userId": p.user_id,
                    "deviceName": p.device_name,
                    "endpoint": p.endpoint,
                    "data": p.data,
                    "day": p.day_label,
                    "createdAt": p.created_at,
                }
                for p in payloads
            ],
        })
