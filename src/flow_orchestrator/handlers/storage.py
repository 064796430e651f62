"""
Storage Handlers - Database and spreadsheet nodes.

Operations are simulated; the node reports what it would have done.
Driver-backed implementations can be registered over these type tags.
"""

from __future__ import annotations

import logging

from ..errors import HandlerError
from .base import NodeHandler


logger = logging.getLogger(__name__)

DATABASE_OPERATIONS = ("executeQuery", "insert", "update", "delete")


class PostgresHandler(NodeHandler):
    """
    Postgres - executeQuery | insert | update | delete.
    """

    type = "n8n-nodes-base.postgres"

    description = {
        "displayName": "Postgres",
        "name": "postgres",
        "group": ["input"],
        "version": 1,
        "inputs": ["main"],
        "outputs": ["main"],
    }

    def validate(self, node):
        if not node.parameters.get("operation"):
            return [f"Database node {node.id} missing operation"]
        return []

    def execute(self, node, items, context):
        operation = self.require_parameter(node, "operation", "Database node missing operation parameter")
        table = context.get_parameter(node, "table")

        if operation == "executeQuery":
            query = str(context.get_parameter(node, "query", ""))
            logger.debug(f"Executing query: {query[:50]}")
            return [{"json": {"query": query, "rows": [], "rowCount": 0, "success": True}}]
        if operation == "insert":
            return [{"json": {"operation": "insert", "table": table, "rowsInserted": len(items), "success": True}}]
        if operation == "update":
            return [{"json": {"operation": "update", "table": table, "rowsUpdated": len(items), "success": True}}]
        if operation == "delete":
            return [{"json": {"operation": "delete", "table": table, "rowsDeleted": 0, "success": True}}]

        raise HandlerError(f"Unknown database operation: {operation}", node_id=node.id, node_name=node.name)


class SpreadsheetFileHandler(NodeHandler):
    """Spreadsheet File - Summarizes the rows it received."""

    type = "n8n-nodes-base.spreadsheetFile"

    description = {
        "displayName": "Spreadsheet File",
        "name": "spreadsheetFile",
        "group": ["transform"],
        "version": 1,
        "inputs": ["main"],
        "outputs": ["main"],
    }

    def execute(self, node, items, context):
        return [{
            "json": {
                "operation": context.get_parameter(node, "operation", "toFile"),
                "rowCount": len(items),
                "success": True,
            }
        }]


__all__ = ["PostgresHandler", "SpreadsheetFileHandler", "DATABASE_OPERATIONS"]
