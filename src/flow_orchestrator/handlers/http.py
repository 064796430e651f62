"""
HTTP - Timeout-bounded HTTP client and the HTTP Request node handler.

Every request carries an explicit timeout; a hung endpoint would otherwise
pin a worker slot forever.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, Optional

import requests
from requests.exceptions import RequestException, Timeout

from ..config import get_settings
from ..errors import HandlerError, HttpRequestError
from .base import NodeHandler


logger = logging.getLogger(__name__)

BODY_METHODS = ("POST", "PUT", "PATCH")


class HttpResponse:
    """
    Wrapper for HTTP response with convenient accessors.
    """

    def __init__(self, response: requests.Response):
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._response.headers)

    @property
    def text(self) -> str:
        return self._response.text

    @property
    def ok(self) -> bool:
        return self._response.ok

    def json(self) -> Any:
        """Parse body as JSON, falling back to {"text": ...}."""
        try:
            return self._response.json()
        except ValueError:
            return {"text": self._response.text}

    def raise_for_status(self) -> None:
        """Raise HttpRequestError if status code indicates error."""
        if not self.ok:
            raise HttpRequestError(
                f"HTTP request failed: {self.status_code} {self._response.reason}",
                status_code=self.status_code,
                response_body=self.text[:1000] if self.text else None,
                url=str(self._response.url),
            )


class HttpClient:
    """
    HTTP client with timeout enforcement.

    Usage:
        client = HttpClient(timeout=10)
        response = client.request("GET", "https://api.example.com/users")
        data = response.json()
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        default_headers: Optional[Dict[str, str]] = None,
    ):
        self.timeout = timeout or get_settings().http_timeout_s
        self.headers: Dict[str, str] = dict(default_headers or {})

    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        json_body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """
        Make HTTP request.

        Raises:
            HandlerError: On timeout or transport failure
        """
        request_timeout = timeout or self.timeout
        try:
            response = requests.request(
                method=method,
                url=url,
                headers={**self.headers, **(headers or {})},
                json=json_body,
                params=params,
                timeout=request_timeout,
            )
        except Timeout as e:
            raise HandlerError(f"Request to {url} timed out after {request_timeout}s", cause=e) from e
        except RequestException as e:
            raise HandlerError(f"Request to {url} failed: {e}", cause=e) from e
        return HttpResponse(response)


def build_headers(header_params: Any) -> Dict[str, str]:
    """Accept headers as a dict, a JSON string or a [{name, value}] list."""
    if isinstance(header_params, str):
        try:
            header_params = json.loads(header_params or "{}")
        except json.JSONDecodeError:
            return {}
    if isinstance(header_params, list):
        return {
            str(h["name"]): str(h.get("value", ""))
            for h in header_params
            if isinstance(h, dict) and "name" in h
        }
    if isinstance(header_params, dict):
        return {str(k): str(v) for k, v in header_params.items()}
    return {}


def apply_authentication(headers: Dict[str, str], auth: Dict[str, Any]) -> None:
    """Add authentication headers in place."""
    auth_type = auth.get("type")
    if auth_type == "headerAuth":
        headers[auth["headerName"]] = auth["headerValue"]
    elif auth_type == "basicAuth":
        token = base64.b64encode(f"{auth['username']}:{auth['password']}".encode()).decode()
        headers["Authorization"] = f"Basic {token}"
    elif auth_type == "bearerAuth":
        headers["Authorization"] = f"Bearer {auth['token']}"
    elif auth_type == "oAuth2":
        headers["Authorization"] = f"Bearer {auth['accessToken']}"
    else:
        raise HandlerError(f"Unsupported authentication type: {auth_type}")


class HttpRequestHandler(NodeHandler):
    """
    HTTP Request - Call an HTTP endpoint.

    Parameters: url (required), method, headers, body, timeout (ms),
    authentication {type, ...}. Non-2xx responses fail the node.
    """

    type = "n8n-nodes-base.httpRequest"

    description = {
        "displayName": "HTTP Request",
        "name": "httpRequest",
        "group": ["input", "output"],
        "version": 1,
        "inputs": ["main"],
        "outputs": ["main"],
    }

    def validate(self, node):
        if not node.parameters.get("url"):
            return [f"HTTP node {node.id} missing URL"]
        return []

    def execute(self, node, items, context):
        url = self.require_parameter(node, "url", "HTTP node missing URL parameter")
        method = str(context.get_parameter(node, "method", "GET")).upper()
        headers = build_headers(context.get_parameter(node, "headers", {}))

        auth = context.get_parameter(node, "authentication")
        if isinstance(auth, dict):
            apply_authentication(headers, auth)

        body = context.get_parameter(node, "body")
        if isinstance(body, str):
            try:
                body = json.loads(body) if body else None
            except json.JSONDecodeError as e:
                raise HandlerError(f"{node.name}: body is not valid JSON", node_id=node.id) from e

        timeout_ms = context.get_parameter(node, "timeout")
        timeout = float(timeout_ms) / 1000 if timeout_ms else None

        response = context.http.request(
            method,
            url,
            headers=headers,
            json_body=body if method in BODY_METHODS else None,
            timeout=timeout,
        )
        response.raise_for_status()

        return [{
            "json": response.json(),
            "headers": response.headers,
            "statusCode": response.status_code,
        }]


__all__ = [
    "HttpClient",
    "HttpResponse",
    "HttpRequestHandler",
    "build_headers",
    "apply_authentication",
]
