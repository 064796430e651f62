"""
Handlers - Node type strategies.

Every handler follows one contract: execute(node, items, context) -> items.
"""

from .base import (
    CallableHandler,
    HandlerFunc,
    NodeContext,
    NodeExecutionData,
    NodeHandler,
    PassThroughHandler,
)
from .core import (
    CodeHandler,
    FunctionHandler,
    ManualTriggerHandler,
    NoOpHandler,
    SetHandler,
    StartHandler,
)
from .http import HttpClient, HttpRequestHandler, HttpResponse
from .messaging import EmailSendHandler, WebhookHandler
from .schedule import CronHandler, ScheduleTriggerHandler
from .storage import PostgresHandler, SpreadsheetFileHandler

BUILTIN_HANDLERS = (
    ManualTriggerHandler,
    StartHandler,
    SetHandler,
    NoOpHandler,
    CodeHandler,
    FunctionHandler,
    HttpRequestHandler,
    EmailSendHandler,
    WebhookHandler,
    CronHandler,
    ScheduleTriggerHandler,
    PostgresHandler,
    SpreadsheetFileHandler,
)

__all__ = [
    # Contract
    "NodeHandler",
    "NodeContext",
    "NodeExecutionData",
    "CallableHandler",
    "PassThroughHandler",
    "HandlerFunc",
    # Built-ins
    "BUILTIN_HANDLERS",
    "ManualTriggerHandler",
    "StartHandler",
    "SetHandler",
    "NoOpHandler",
    "CodeHandler",
    "FunctionHandler",
    "HttpRequestHandler",
    "EmailSendHandler",
    "WebhookHandler",
    "CronHandler",
    "ScheduleTriggerHandler",
    "PostgresHandler",
    "SpreadsheetFileHandler",
    # HTTP
    "HttpClient",
    "HttpResponse",
]
