"""Tests for Teams notification cards and delivery."""

import json
import logging

import httpx
import pytest

from intune_packager.constants import ErrorKind
from intune_packager.models.result import BatchResult, LabelRunResult, OperationStatus
from intune_packager.services.notification_service import TeamsNotifier, batch_card, label_card

WEBHOOK = "https://example.webhook.office.com/webhookb2/abc"


def _facts(card):
    body = card["attachments"][0]["content"]["body"]
    facts = {}
    for element in body:
        if element["type"] == "FactSet":
            facts.update({f["title"]: f["value"] for f in element["facts"]})
    return facts


def _uploaded(version: str = "122.0") -> LabelRunResult:
    result = LabelRunResult(
        status=OperationStatus.SUCCESS,
        folder_name="firefox_ABC",
        display_name="Firefox",
        version=version,
        uploaded=True,
        deleted_app_ids=["old-1"],
        metadata={"file_size": 3 * 1024 * 1024, "deployment_type": "DMG",
                  "deployment_arch": "UNIVERSAL", "dual_arch": False},
    )
    result.complete()
    return result


def _failed() -> LabelRunResult:
    result = LabelRunResult(status=OperationStatus.FAILED, folder_name="zoom_DEF", display_name="Zoom")
    result.add_error(ErrorKind.VERIFICATION, "Team ID mismatch: expected BJ4HAAB9B3, got 43AQ936H96")
    result.complete()
    return result


def test_failure_card_carries_error() -> None:
    card = label_card(_failed())

    assert card["attachments"][0]["contentType"] == "application/vnd.microsoft.card.adaptive"
    assert _facts(card)["Error:"].startswith("Team ID mismatch")
    assert _facts(card)["Label:"] == "zoom_DEF"


def test_success_card_lists_details() -> None:
    facts = _facts(label_card(_uploaded()))

    assert facts["Version:"] == "122.0"
    assert facts["Deployment Type:"] == "DMG"
    assert facts["Removed:"] == "1 old version(s)"
    assert "Architectures:" not in facts
    assert "Size:" in facts


def test_batch_card_summarises() -> None:
    batch = BatchResult(status=OperationStatus.IN_PROGRESS)
    batch.add_result(_uploaded())
    batch.add_result(_failed())
    batch.add_result(LabelRunResult(status=OperationStatus.SKIPPED, folder_name="slack_GHI"))

    facts = _facts(batch_card(batch))

    assert batch.status == OperationStatus.PARTIAL
    assert facts["Processed:"] == "3"
    assert facts["Succeeded:"] == "2"
    assert facts["Failed:"] == "1"
    assert facts["Firefox"] == "122.0"
    assert facts["zoom_DEF"].startswith("Team ID mismatch")


@pytest.mark.anyio
async def test_teams_notifier_posts_card() -> None:
    posted = []

    def handler(request: httpx.Request) -> httpx.Response:
        posted.append((str(request.url), json.loads(request.content)))
        return httpx.Response(200, text="1")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        await TeamsNotifier(WEBHOOK, client).send(_uploaded())

    assert posted[0][0] == WEBHOOK
    assert posted[0][1]["type"] == "message"


@pytest.mark.anyio
async def test_delivery_failure_is_logged_not_raised(caplog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="webhook disabled")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notifier = TeamsNotifier(WEBHOOK, client)
        with caplog.at_level(logging.ERROR):
            assert await notifier._post({"type": "message"}) is False
            await notifier.send_batch(BatchResult(status=OperationStatus.SUCCESS))

    assert "HTTP 500" in caplog.text


@pytest.mark.anyio
async def test_connection_error_is_logged_not_raised(caplog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with caplog.at_level(logging.ERROR):
            assert await TeamsNotifier(WEBHOOK, client)._post({}) is False

    assert "Error sending notification" in caplog.text
