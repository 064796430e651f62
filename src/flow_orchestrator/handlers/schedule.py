"""
Schedule Handlers - Cron trigger node.
"""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import croniter

from ..errors import HandlerError
from .base import NodeHandler

DEFAULT_EXPRESSION = "0 * * * *"


class CronHandler(NodeHandler):
    """
    Cron - Reports the schedule and its next fire time.

    Parameters: cronExpression (5-field), timezone (IANA name, default UTC).
    """

    type = "n8n-nodes-base.cron"

    description = {
        "displayName": "Cron",
        "name": "cron",
        "group": ["trigger", "schedule"],
        "version": 1,
        "inputs": [],
        "outputs": ["main"],
    }

    def validate(self, node):
        expr = node.parameters.get("cronExpression") or DEFAULT_EXPRESSION
        if not croniter.croniter.is_valid(expr):
            return [f"Cron node {node.id} has invalid expression: {expr}"]
        return []

    def execute(self, node, items, context):
        expr = context.get_parameter(node, "cronExpression", DEFAULT_EXPRESSION)
        tz_name = context.get_parameter(node, "timezone", "UTC")
        try:
            tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise HandlerError(f"Unknown timezone: {tz_name}", node_id=node.id) from e

        try:
            it = croniter.croniter(expr, datetime.now(tz))
        except (ValueError, KeyError) as e:
            raise HandlerError(f"Invalid cron expression '{expr}': {e}", node_id=node.id) from e

        next_run = it.get_next(datetime)
        return [{
            "json": {
                "schedule": expr,
                "nextRun": next_run.isoformat(),
                "timezone": tz_name,
            }
        }]


class ScheduleTriggerHandler(CronHandler):
    """Schedule Trigger - cron-backed, n8n's newer schedule node."""

    type = "n8n-nodes-base.scheduleTrigger"
    description = {**CronHandler.description, "displayName": "Schedule Trigger", "name": "scheduleTrigger"}


__all__ = ["CronHandler", "ScheduleTriggerHandler"]
