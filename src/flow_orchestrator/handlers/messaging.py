"""
Messaging Handlers - Email and webhook nodes.

Email delivery is simulated: the node validates its configuration and
reports a message id. Real delivery belongs to an external mail service.
"""

from __future__ import annotations

import logging
import uuid

from ..models import utcnow
from .base import NodeHandler


logger = logging.getLogger(__name__)


class EmailSendHandler(NodeHandler):
    """Send Email - requires toEmail and subject."""

    type = "n8n-nodes-base.emailSend"

    description = {
        "displayName": "Send Email",
        "name": "emailSend",
        "group": ["output"],
        "version": 1,
        "inputs": ["main"],
        "outputs": ["main"],
    }

    def validate(self, node):
        errors = []
        if not node.parameters.get("toEmail"):
            errors.append(f"Email node {node.id} missing recipient")
        if not node.parameters.get("subject"):
            errors.append(f"Email node {node.id} missing subject")
        return errors

    def execute(self, node, items, context):
        to_email = self.require_parameter(node, "toEmail", "Email node missing recipient")
        subject = self.require_parameter(node, "subject", "Email node missing subject")

        logger.info(f"Sending email to {to_email}: {subject}")

        return [{
            "json": {
                "success": True,
                "messageId": f"msg_{uuid.uuid4().hex[:12]}",
                "to": to_email,
                "subject": subject,
                "sentAt": utcnow().isoformat(),
            }
        }]


class WebhookHandler(NodeHandler):
    """Webhook - Describes the endpoint registered for this node."""

    type = "n8n-nodes-base.webhook"

    description = {
        "displayName": "Webhook",
        "name": "webhook",
        "group": ["trigger"],
        "version": 1,
        "inputs": [],
        "outputs": ["main"],
    }

    def execute(self, node, items, context):
        base_url = context.get_parameter(node, "baseUrl", "https://webhook.site")
        path = context.get_parameter(node, "path", node.id)
        return [{
            "json": {
                "webhookUrl": f"{base_url.rstrip('/')}/{str(path).lstrip('/')}",
                "method": context.get_parameter(node, "httpMethod", "POST"),
                "registered": True,
                "nodeId": node.id,
                "payload": dict(context.input_data),
            }
        }]


__all__ = ["EmailSendHandler", "WebhookHandler"]
