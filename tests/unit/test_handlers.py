"""Tests for built-in node handlers."""
from datetime import datetime
from unittest.mock import Mock, patch

import pytest
import requests

from flow_orchestrator.errors import HandlerError, HttpRequestError
from flow_orchestrator.handlers import (
    CodeHandler,
    CronHandler,
    EmailSendHandler,
    HttpClient,
    HttpRequestHandler,
    ManualTriggerHandler,
    NodeContext,
    NoOpHandler,
    PostgresHandler,
    SetHandler,
    SpreadsheetFileHandler,
    WebhookHandler,
)
from flow_orchestrator.handlers.http import apply_authentication, build_headers
from flow_orchestrator.models import WorkflowNode


def make_node(node_type, parameters=None, node_id="n1", name="Node"):
    return WorkflowNode(id=node_id, name=name, type=node_type, parameters=parameters or {})


def mock_response(status_code=200, payload=None, text="", reason="OK"):
    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = reason
    response.headers = {"Content-Type": "application/json"}
    response.text = text
    response.url = "https://api.example.com/users"
    if payload is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def context(workflow_factory, make_execution):
    execution = make_execution(workflow_factory(["A"]), {"user": "ada"})
    return NodeContext(execution=execution, http_client=HttpClient(timeout=5))


class TestCoreHandlers:
    """Test trigger and data-shaping handlers."""

    def test_manual_trigger_emits_payload(self, context):
        result = ManualTriggerHandler().execute(make_node("n8n-nodes-base.manualTrigger"), [], context)

        assert result == [{"json": {"user": "ada"}}]

    def test_set_manual_merges_values(self, context):
        node = make_node("n8n-nodes-base.set", {"values": {"status": "done"}})

        result = SetHandler().execute(node, [{"json": {"id": 1}}, {"json": {"id": 2}}], context)

        assert [item["json"] for item in result] == [
            {"id": 1, "status": "done"},
            {"id": 2, "status": "done"},
        ]
        assert result[1]["pairedItem"] == {"item": 1}

    def test_set_raw_keep_only_set(self, context):
        node = make_node("n8n-nodes-base.set", {
            "mode": "raw",
            "jsonData": '{"message": "Hello", "count": 42}',
            "keepOnlySet": True,
        })

        result = SetHandler().execute(node, [{"json": {"id": 1}}], context)

        assert result[0]["json"] == {"message": "Hello", "count": 42}

    def test_set_raw_invalid_json(self, context):
        node = make_node("n8n-nodes-base.set", {"mode": "raw", "jsonData": "{broken"})

        with pytest.raises(HandlerError, match="jsonData is not valid JSON"):
            SetHandler().execute(node, [{"json": {}}], context)

    def test_noop_passes_json_through(self, context):
        result = NoOpHandler().execute(make_node("n8n-nodes-base.noOp"), [{"json": {"a": 1}}], context)

        assert result == [{"json": {"a": 1}, "pairedItem": {"item": 0}}]


class TestCodeHandler:
    """Test the scripted transform handler."""

    def test_expression(self, context):
        node = make_node("n8n-nodes-base.code", {"pythonCode": "[{'doubled': i['json']['n'] * 2} for i in items]"})

        result = CodeHandler().execute(node, [{"json": {"n": 2}}, {"json": {"n": 5}}], context)

        assert [item["json"] for item in result] == [{"doubled": 4}, {"doubled": 10}]

    def test_function_body(self, context):
        code = """
        total = sum(i['json']['n'] for i in items)
        return {'total': total, 'user': input_data['user']}
        """
        node = make_node("n8n-nodes-base.code", {"code": code})

        result = CodeHandler().execute(node, [{"json": {"n": 2}}, {"json": {"n": 3}}], context)

        assert result == [{"json": {"total": 5, "user": "ada"}}]

    def test_none_result_returns_input(self, context):
        node = make_node("n8n-nodes-base.code", {"code": "json['seen'] = True\nreturn None"})
        items = [{"json": {"n": 1}}]

        result = CodeHandler().execute(node, items, context)

        assert result == [{"json": {"n": 1, "seen": True}}]

    def test_error_is_wrapped(self, context):
        node = make_node("n8n-nodes-base.code", {"code": "raise ValueError('boom')"})

        with pytest.raises(HandlerError, match="Code execution error: boom"):
            CodeHandler().execute(node, [{"json": {}}], context)

    def test_validate_requires_code(self):
        assert CodeHandler().validate(make_node("n8n-nodes-base.code", node_id="c1")) == [
            "Code node c1 missing code"
        ]


class TestHttpRequestHandler:
    """Test HTTP node with mocked requests."""

    @patch("flow_orchestrator.handlers.http.requests.request")
    def test_get_success(self, mock_request, context):
        mock_request.return_value = mock_response(payload={"users": [1, 2]})
        node = make_node("n8n-nodes-base.httpRequest", {
            "url": "https://api.example.com/users",
            "headers": {"X-Trace": "abc"},
        })

        result = HttpRequestHandler().execute(node, [{"json": {}}], context)

        assert result[0]["json"] == {"users": [1, 2]}
        assert result[0]["statusCode"] == 200
        kwargs = mock_request.call_args.kwargs
        assert kwargs["method"] == "GET"
        assert kwargs["headers"] == {"X-Trace": "abc"}
        assert kwargs["json"] is None
        assert kwargs["timeout"] == 5

    @patch("flow_orchestrator.handlers.http.requests.request")
    def test_post_body_auth_and_timeout(self, mock_request, context):
        mock_request.return_value = mock_response(payload={"created": True})
        node = make_node("n8n-nodes-base.httpRequest", {
            "url": "https://api.example.com/users",
            "method": "post",
            "body": '{"name": "ada"}',
            "timeout": 2500,
            "authentication": {"type": "bearerAuth", "token": "t0k"},
        })

        HttpRequestHandler().execute(node, [{"json": {}}], context)

        kwargs = mock_request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["json"] == {"name": "ada"}
        assert kwargs["timeout"] == 2.5
        assert kwargs["headers"]["Authorization"] == "Bearer t0k"

    @patch("flow_orchestrator.handlers.http.requests.request")
    def test_non_json_body_falls_back_to_text(self, mock_request, context):
        mock_request.return_value = mock_response(text="plain body")
        node = make_node("n8n-nodes-base.httpRequest", {"url": "https://api.example.com/users"})

        result = HttpRequestHandler().execute(node, [{"json": {}}], context)

        assert result[0]["json"] == {"text": "plain body"}

    @patch("flow_orchestrator.handlers.http.requests.request")
    def test_error_status_raises(self, mock_request, context):
        mock_request.return_value = mock_response(status_code=503, text="unavailable", reason="Service Unavailable")
        node = make_node("n8n-nodes-base.httpRequest", {"url": "https://api.example.com/users"})

        with pytest.raises(HttpRequestError) as exc_info:
            HttpRequestHandler().execute(node, [{"json": {}}], context)

        assert exc_info.value.status_code == 503
        assert "503 Service Unavailable" in str(exc_info.value)

    @patch("flow_orchestrator.handlers.http.requests.request")
    def test_timeout_raises_handler_error(self, mock_request, context):
        mock_request.side_effect = requests.exceptions.Timeout("slow")
        node = make_node("n8n-nodes-base.httpRequest", {"url": "https://api.example.com/users"})

        with pytest.raises(HandlerError, match="timed out"):
            HttpRequestHandler().execute(node, [{"json": {}}], context)

    def test_missing_url(self, context):
        node = make_node("n8n-nodes-base.httpRequest", node_id="h1")

        assert HttpRequestHandler().validate(node) == ["HTTP node h1 missing URL"]
        with pytest.raises(HandlerError, match="missing URL"):
            HttpRequestHandler().execute(node, [{"json": {}}], context)

    def test_build_headers_formats(self):
        assert build_headers({"A": 1}) == {"A": "1"}
        assert build_headers('{"A": "x"}') == {"A": "x"}
        assert build_headers([{"name": "A", "value": "y"}, {"value": "ignored"}]) == {"A": "y"}
        assert build_headers("not json") == {}
        assert build_headers(None) == {}

    def test_apply_authentication(self):
        headers = {}
        apply_authentication(headers, {"type": "basicAuth", "username": "u", "password": "p"})
        assert headers["Authorization"] == "Basic dTpw"

        headers = {}
        apply_authentication(headers, {"type": "headerAuth", "headerName": "X-Key", "headerValue": "k"})
        assert headers == {"X-Key": "k"}

        with pytest.raises(HandlerError, match="Unsupported authentication type"):
            apply_authentication({}, {"type": "digest"})


class TestStorageAndMessagingHandlers:
    """Test simulated side-effect handlers."""

    def test_postgres_insert_counts_items(self, context):
        node = make_node("n8n-nodes-base.postgres", {"operation": "insert", "table": "users"})

        result = PostgresHandler().execute(node, [{"json": {}}, {"json": {}}], context)

        assert result[0]["json"]["rowsInserted"] == 2
        assert result[0]["json"]["table"] == "users"

    def test_postgres_unknown_operation(self, context):
        node = make_node("n8n-nodes-base.postgres", {"operation": "truncate"})

        with pytest.raises(HandlerError, match="Unknown database operation: truncate"):
            PostgresHandler().execute(node, [], context)

    def test_postgres_validate(self):
        assert PostgresHandler().validate(make_node("n8n-nodes-base.postgres", node_id="db")) == [
            "Database node db missing operation"
        ]

    def test_spreadsheet_counts_rows(self, context):
        result = SpreadsheetFileHandler().execute(
            make_node("n8n-nodes-base.spreadsheetFile"), [{"json": {}}] * 3, context
        )

        assert result[0]["json"]["rowCount"] == 3

    def test_email_send(self, context):
        node = make_node("n8n-nodes-base.emailSend", {"toEmail": "a@example.com", "subject": "Hi"})

        result = EmailSendHandler().execute(node, [{"json": {}}], context)

        assert result[0]["json"]["success"] is True
        assert result[0]["json"]["messageId"].startswith("msg_")

    def test_email_validate(self):
        errors = EmailSendHandler().validate(make_node("n8n-nodes-base.emailSend", node_id="mail"))

        assert errors == ["Email node mail missing recipient", "Email node mail missing subject"]

    def test_webhook_url(self, context):
        node = make_node("n8n-nodes-base.webhook", {"baseUrl": "https://hooks.example.com/", "path": "/orders"})

        result = WebhookHandler().execute(node, [], context)

        assert result[0]["json"]["webhookUrl"] == "https://hooks.example.com/orders"
        assert result[0]["json"]["payload"] == {"user": "ada"}


class TestCronHandler:
    """Test schedule handler."""

    def test_next_run(self, context):
        node = make_node("n8n-nodes-base.cron", {"cronExpression": "*/5 * * * *", "timezone": "UTC"})

        result = CronHandler().execute(node, [], context)

        next_run = datetime.fromisoformat(result[0]["json"]["nextRun"])
        assert next_run.minute % 5 == 0
        assert result[0]["json"]["schedule"] == "*/5 * * * *"

    def test_invalid_expression_fails_validation(self):
        node = make_node("n8n-nodes-base.cron", {"cronExpression": "not a cron"}, node_id="cron")

        assert CronHandler().validate(node) == ["Cron node cron has invalid expression: not a cron"]

    def test_unknown_timezone(self, context):
        node = make_node("n8n-nodes-base.cron", {"timezone": "Mars/Olympus"})

        with pytest.raises(HandlerError, match="Unknown timezone"):
            CronHandler().execute(node, [], context)
