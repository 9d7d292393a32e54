"""MCP tools exposing the insights engine.

Every tool answers with a JSON document carrying ``success``; engine
failures become ``{"success": false, "error": ...}`` here and nowhere else.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from vitalsync.domains.health.domain_logic.insight_synthesizer import InsightError

if TYPE_CHECKING:
    from vitalsync.domains.health.domain_logic.insight_synthesizer import (
        InsightSynthesizer,
    )

logger = logging.getLogger(__name__)


def register_insight_tools(mcp: FastMCP, synthesizer: InsightSynthesizer) -> None:
    """Register the insights tools on the MCP server."""

    @mcp.tool
    async def health_insights(ctx: Context, user_id: str) -> str:
        """Compute health insights for a user from their recent device data.

        Returns current metrics, weekly averages, week-over-week trends, a
        0-100 health score with a data-availability flag, recommendations,
        alerts, a weekly summary, streaks, personal bests, and sleep debt.

        Args:
            user_id: Identifier issued to the user at registration.
        """
        start_time = time.monotonic()
        try:
            result = await synthesizer.synthesize(str(user_id))
        except InsightError as exc:
            logger.exception("Insights failed for user %s", user_id)
            return json.dumps({"success": False, "error": str(exc)})

        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.debug("Insights for user %s computed in %.1f ms", user_id, elapsed_ms)
        return json.dumps({"success": True, "insights": result.to_dict()})

    @mcp.tool
    async def daily_metric_averages(
        ctx: Context,
        user_id: str,
        category: str,
        days: int = 30,
    ) -> str:
        """Show a metric category averaged per calendar day.

        Args:
            user_id: Identifier issued to the user at registration.
            category: One of activity, heart, sleep, body, vitals.
            days: Number of days to look back (default: 30).
        """
        try:
            series = await synthesizer.trend_over_time(str(user_id), category, days=days)
        except InsightError as exc:
            logger.exception("Daily averages failed for user %s (%s)", user_id, category)
            return json.dumps({"success": False, "error": str(exc)})

        return json.dumps({"success": True, "category": category, "days": series})
