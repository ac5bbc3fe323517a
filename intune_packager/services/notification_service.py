"""Teams webhook notifications"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from ..constants import APP_NAME, DEFAULT_HTTP_TIMEOUT
from ..models.result import BatchResult, LabelRunResult
from ..utils.file_utils import format_size

logger = logging.getLogger(__name__)

CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"
CARD_VERSION = "1.4"


def _text(text: str, **style) -> Dict[str, Any]:
    block = {"type": "TextBlock", "text": text, "wrap": True}
    block.update(style)
    return block


def _facts(facts: List[tuple]) -> Dict[str, Any]:
    return {
        "type": "FactSet",
        "facts": [{"title": title, "value": value} for title, value in facts if value],
    }


def build_card(body: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Wrap adaptive card elements into a webhook message"""
    return {
        "type": "message",
        "attachments": [
            {
                "contentType": CARD_CONTENT_TYPE,
                "content": {
                    "type": "AdaptiveCard",
                    "version": CARD_VERSION,
                    "msteams": {"width": "full"},
                    "body": body,
                },
            }
        ],
    }


def label_card(result: LabelRunResult) -> Dict[str, Any]:
    """
    Card describing one label run

    Successful uploads list version, size, deployment type and
    architecture; failures carry the error message verbatim.
    """
    details = result.metadata
    title = result.display_name or result.folder_name

    if result.is_failed:
        message = result.errors[-1].message if result.errors else result.message
        return build_card([
            _text(f"**{title}**", size="Large", weight="Bolder", color="Attention"),
            _text(f"{APP_NAME} deployment failed", isSubtle=True),
            _facts([
                ("Label:", result.folder_name),
                ("Version:", result.version),
                ("Error:", message),
            ]),
        ])

    duration = result.duration
    facts = [
        ("Version:", result.version),
        ("Size:", format_size(details["file_size"]) if details.get("file_size") else ""),
        ("Deployment Type:", details.get("deployment_type", "")),
        ("Architecture:", details.get("deployment_arch", "")),
        ("Time:", f"{duration:.0f}s" if duration is not None else ""),
    ]
    if details.get("dual_arch"):
        facts.append(("Architectures:", "arm64 + x86_64"))
    if result.deleted_app_ids:
        facts.append(("Removed:", f"{len(result.deleted_app_ids)} old version(s)"))

    return build_card([
        _text(f"**{title}**", size="Large", weight="Bolder"),
        _text(f"{APP_NAME} deployment update", isSubtle=True),
        _text("**Software Details:**"),
        _facts(facts),
    ])


def batch_card(batch: BatchResult) -> Dict[str, Any]:
    """One summary card for a whole batch"""
    body = [
        _text(f"**{APP_NAME} batch summary**", size="Large", weight="Bolder"),
        _facts([
            ("Processed:", str(batch.total_operations)),
            ("Succeeded:", str(batch.successful_operations)),
            ("Failed:", str(batch.failed_operations)),
        ]),
    ]

    uploaded = batch.uploaded
    if uploaded:
        body.append(_text("**Uploaded:**"))
        body.append(_facts([(r.display_name or r.folder_name, r.version) for r in uploaded]))

    failed = [r for r in batch.results if r.is_failed]
    if failed:
        body.append(_text("**Failed:**", color="Attention"))
        body.append(_facts([
            (r.folder_name, r.errors[-1].message if r.errors else r.message) for r in failed
        ]))

    return build_card(body)


class NotificationSink(ABC):
    """Receives run outcomes; delivery problems never reach the caller"""

    @abstractmethod
    async def send(self, result: LabelRunResult) -> None:
        pass

    @abstractmethod
    async def send_batch(self, batch: BatchResult) -> None:
        pass


class NullNotifier(NotificationSink):
    """Used when notifications are disabled"""

    async def send(self, result: LabelRunResult) -> None:
        return None

    async def send_batch(self, batch: BatchResult) -> None:
        return None


class TeamsNotifier(NotificationSink):
    """Posts adaptive cards to a Teams incoming webhook"""

    def __init__(self, webhook_url: str, http_client: Optional[httpx.AsyncClient] = None):
        self.webhook_url = webhook_url
        self.http_client = http_client

    async def _post(self, payload: Dict[str, Any]) -> bool:
        try:
            if self.http_client is not None:
                response = await self.http_client.post(self.webhook_url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=DEFAULT_HTTP_TIMEOUT) as client:
                    response = await client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Error sending notification: %s", e)
            return False

        if not 200 <= response.status_code < 300:
            logger.error("Failed to send notification, HTTP %d: %s",
                         response.status_code, response.text[:200])
            return False

        logger.debug("Notification sent")
        return True

    async def send(self, result: LabelRunResult) -> None:
        await self._post(label_card(result))

    async def send_batch(self, batch: BatchResult) -> None:
        await self._post(batch_card(batch))
