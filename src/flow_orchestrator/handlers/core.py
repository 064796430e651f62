"""
Core Handlers - Essential utility node types.

Triggers, data shaping and scripted transforms.
"""

from __future__ import annotations

import json
import logging
import textwrap
from typing import Any, Dict, List

from ..errors import HandlerError
from .base import NodeHandler


logger = logging.getLogger(__name__)

CODE_PARAMETERS = ("pythonCode", "code", "functionCode", "jsCode")


class ManualTriggerHandler(NodeHandler):
    """
    Manual Trigger - Workflow entry point.

    Emits the execution input payload as a single item.
    """

    type = "n8n-nodes-base.manualTrigger"

    description = {
        "displayName": "Manual Trigger",
        "name": "manualTrigger",
        "group": ["trigger"],
        "version": 1,
        "inputs": [],
        "outputs": ["main"],
    }

    def execute(self, node, items, context):
        return [{"json": dict(context.input_data)}]


class StartHandler(ManualTriggerHandler):
    """Legacy n8n start node."""

    type = "n8n-nodes-base.start"
    description = {**ManualTriggerHandler.description, "displayName": "Start", "name": "start"}


class SetHandler(NodeHandler):
    """
    Set - Set or modify fields on items.

    Parameters: mode ("manual" | "raw"), values (dict), jsonData (JSON),
    keepOnlySet (bool).
    """

    type = "n8n-nodes-base.set"

    description = {
        "displayName": "Set",
        "name": "set",
        "group": ["transform"],
        "version": 1,
        "inputs": ["main"],
        "outputs": ["main"],
    }

    def _new_values(self, node, context) -> Dict[str, Any]:
        mode = context.get_parameter(node, "mode", "manual")
        if mode == "raw":
            raw = context.get_parameter(node, "jsonData", "{}")
            if isinstance(raw, str):
                try:
                    raw = json.loads(raw)
                except json.JSONDecodeError as e:
                    raise HandlerError(f"{node.name}: jsonData is not valid JSON: {e}", node_id=node.id) from e
            return dict(raw)
        return dict(context.get_parameter(node, "values", {}))

    def execute(self, node, items, context):
        new_values = self._new_values(node, context)
        keep_only_set = bool(context.get_parameter(node, "keepOnlySet", False))

        results = []
        for i, item in enumerate(items):
            base = {} if keep_only_set else dict(item.get("json", {}))
            results.append({
                "json": {**base, **new_values},
                "pairedItem": {"item": i},
            })
        return results


class NoOpHandler(NodeHandler):
    """No Operation - Passes items through unchanged."""

    type = "n8n-nodes-base.noOp"

    description = {
        "displayName": "No Operation",
        "name": "noOp",
        "group": ["transform"],
        "version": 1,
        "inputs": ["main"],
        "outputs": ["main"],
    }

    def execute(self, node, items, context):
        return [
            {"json": item.get("json", {}), "pairedItem": {"item": i}}
            for i, item in enumerate(items)
        ]


def _normalize_result(result: Any) -> List[Dict[str, Any]]:
    """Shape a script's return value as output items."""
    if isinstance(result, list):
        output = []
        for i, entry in enumerate(result):
            if isinstance(entry, dict) and "json" in entry:
                output.append(entry)
            elif isinstance(entry, dict):
                output.append({"json": entry, "pairedItem": {"item": i}})
            else:
                output.append({"json": {"data": entry}, "pairedItem": {"item": i}})
        return output
    if isinstance(result, dict):
        return [result if "json" in result else {"json": result}]
    return [{"json": {"result": result}}]


class CodeHandler(NodeHandler):
    """
    Code - Run user-provided Python on the input items.

    The code is either a single expression or a function body ending in
    `return`. Available names: items, json (first item's json), node
    ({id, name, type}), input_data (execution payload).

    SECURITY: This executes arbitrary code - use with caution.
    """

    type = "n8n-nodes-base.code"

    description = {
        "displayName": "Code",
        "name": "code",
        "group": ["transform"],
        "version": 1,
        "inputs": ["main"],
        "outputs": ["main"],
    }

    def _source(self, node) -> str:
        for name in CODE_PARAMETERS:
            if node.parameters.get(name):
                return str(node.parameters[name])
        return ""

    def validate(self, node):
        if not self._source(node):
            return [f"Code node {node.id} missing code"]
        return []

    def execute(self, node, items, context):
        source = self._source(node)
        if not source:
            raise HandlerError("Code node missing code", node_id=node.id, node_name=node.name)

        namespace: Dict[str, Any] = {
            "items": items,
            "json": items[0].get("json", {}) if items else {},
            "node": {"id": node.id, "name": node.name, "type": node.type},
            "input_data": context.input_data,
            "logger": context.get_logger(node),
        }

        try:
            try:
                compiled = compile(source, f"<{node.name}>", "eval")
            except SyntaxError:
                body = textwrap.indent(textwrap.dedent(source), "    ")
                exec(f"def __node_code__():\n{body}\n", namespace)
                result = namespace["__node_code__"]()
            else:
                result = eval(compiled, namespace)
        except HandlerError:
            raise
        except Exception as e:
            raise HandlerError(f"Code execution error: {e}", node_id=node.id, node_name=node.name, cause=e) from e

        if result is None:
            return items
        return _normalize_result(result)


class FunctionHandler(CodeHandler):
    """Legacy n8n function node, same contract as Code."""

    type = "n8n-nodes-base.function"
    description = {**CodeHandler.description, "displayName": "Function", "name": "function"}


__all__ = [
    "ManualTriggerHandler",
    "StartHandler",
    "SetHandler",
    "NoOpHandler",
    "CodeHandler",
    "FunctionHandler",
]
