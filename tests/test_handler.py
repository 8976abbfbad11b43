# tests/test_handler.py
from unittest.mock import MagicMock

import pytest
from prometheus_client import REGISTRY
from slack_sdk.errors import SlackApiError

from libs.config import Settings
from libs.models import UNKNOWN_USER, CommandOutcome, InboundCommand
from services.slack_gateway.handler import (
    ACK_TEXT,
    APPEND_FAILED_TEXT,
    RETRY_TEXT,
    PurchaseCommandHandler,
    build_command_handler,
    escape_mrkdwn,
    format_amount,
)

TODAY = "2026. 10. 19."


def _command(text: str) -> InboundCommand:
    return InboundCommand(
        raw_text=text,
        user_id="U123",
        channel_id="C456",
        command_name="/ai구매",
        signature="v0=test",
        timestamp=1_760_000_000,
    )


@pytest.fixture(autouse=True)
def fixed_date(ledger, mocker):
    mocker.patch.object(ledger, "today", return_value=TODAY)


def test_success_appends_row_and_reports(handler: PurchaseCommandHandler, web_client: MagicMock, appended_rows):
    outcome = handler.process(_command("ChatGPT Plus 20000"))

    assert outcome is CommandOutcome.REPORTED
    assert appended_rows() == [[TODAY, "홍길동", "ChatGPT Plus", 20000.0, ""]]

    web_client.chat_postMessage.assert_called_once()
    kwargs = web_client.chat_postMessage.call_args.kwargs
    assert kwargs["channel"] == "C456"
    assert "ChatGPT Plus" in kwargs["text"]
    assert "20,000" in kwargs["text"]
    assert handler.spreadsheet_url in str(kwargs["blocks"])
    web_client.chat_postEphemeral.assert_not_called()


def test_acknowledge_is_immediate_and_ephemeral(handler: PurchaseCommandHandler, web_client: MagicMock):
    ack = handler.acknowledge(_command("Claude Pro $20"))

    assert ack == {"text": ACK_TEXT, "response_type": "ephemeral"}
    web_client.users_info.assert_not_called()


@pytest.mark.parametrize("text", ["", "   "])
def test_empty_text_short_circuits_to_usage(handler, web_client, spreadsheets, text):
    ack = handler.acknowledge(_command(text))
    outcome = handler.process(_command(text))

    assert "사용법: /ai구매" in ack["text"]
    assert outcome is CommandOutcome.USAGE_HINT
    spreadsheets.values.assert_not_called()
    web_client.users_info.assert_not_called()
    web_client.chat_postMessage.assert_not_called()
    web_client.chat_postEphemeral.assert_not_called()


def test_parse_failure_sends_format_error(handler, web_client, spreadsheets):
    outcome = handler.process(_command("just text"))

    assert outcome is CommandOutcome.PARSE_FAILED
    spreadsheets.values.assert_not_called()
    web_client.users_info.assert_not_called()
    kwargs = web_client.chat_postEphemeral.call_args.kwargs
    assert kwargs["user"] == "U123"
    assert "형식이 올바르지 않습니다" in kwargs["text"]


def test_append_failure_sends_admin_message(handler, web_client, spreadsheets):
    spreadsheets.values.return_value.append.return_value.execute.side_effect = RuntimeError("403 forbidden")

    outcome = handler.process(_command("Claude Pro $20"))

    assert outcome is CommandOutcome.APPEND_FAILED
    web_client.chat_postEphemeral.assert_called_once_with(channel="C456", user="U123", text=APPEND_FAILED_TEXT)
    web_client.chat_postMessage.assert_not_called()


def test_user_lookup_failure_still_appends_with_placeholder(handler, web_client, appended_rows):
    web_client.users_info.side_effect = SlackApiError("failed", response={"ok": False, "error": "user_not_found"})

    outcome = handler.process(_command("Midjourney 10달러"))

    assert outcome is CommandOutcome.REPORTED
    assert appended_rows() == [[TODAY, UNKNOWN_USER, "Midjourney", 10.0, ""]]


def test_outcome_messages_are_distinct(handler, web_client, spreadsheets):
    handler.process(_command("just text"))
    parse_failed = web_client.chat_postEphemeral.call_args.kwargs["text"]

    handler.process(_command("Claude Pro $20"))
    reported = web_client.chat_postMessage.call_args.kwargs["text"]

    spreadsheets.values.return_value.append.return_value.execute.side_effect = RuntimeError("down")
    handler.process(_command("Claude Pro $20"))
    append_failed = web_client.chat_postEphemeral.call_args.kwargs["text"]

    assert len({parse_failed, reported, append_failed}) == 3


def test_unexpected_error_is_reported_as_retry(handler, web_client):
    web_client.chat_postMessage.side_effect = RuntimeError("boom")

    outcome = handler.process(_command("Claude Pro $20"))

    assert outcome is CommandOutcome.ERRORED
    web_client.chat_postEphemeral.assert_called_once_with(channel="C456", user="U123", text=RETRY_TEXT)


def test_error_while_reporting_error_does_not_escape(handler, web_client):
    web_client.chat_postMessage.side_effect = RuntimeError("boom")
    web_client.chat_postEphemeral.side_effect = RuntimeError("still down")

    assert handler.process(_command("Claude Pro $20")) is CommandOutcome.ERRORED


def test_same_command_twice_appends_two_rows(handler, appended_rows):
    # No deduplication: every invocation is a separate purchase.
    first = handler.process(_command("ChatGPT Plus 20000"))
    second = handler.process(_command("ChatGPT Plus 20000"))

    assert first is second is CommandOutcome.REPORTED
    rows = appended_rows()
    assert len(rows) == 2
    assert rows[0] == rows[1]


@pytest.mark.parametrize(
    "amount, expected",
    [(20000.0, "20,000"), (20.5, "20.5"), (100.0, "100"), (20000.5, "20,000.5"), (0.99, "0.99")],
)
def test_format_amount(amount: float, expected: str):
    assert format_amount(amount) == expected


def test_outcome_is_counted(handler):
    def _count() -> float:
        return REGISTRY.get_sample_value("slack_purchase_commands_total", {"outcome": "parse_failed"}) or 0.0

    before = _count()
    handler.process(_command("just text"))

    assert _count() == before + 1


def test_escape_mrkdwn():
    assert escape_mrkdwn("<!channel> & <https://x.example|y>") == (
        "&lt;!channel&gt; &amp; &lt;https://x.example|y&gt;"
    )
    assert escape_mrkdwn("ChatGPT Plus") == "ChatGPT Plus"


def test_control_sequences_in_item_are_escaped(handler, web_client, appended_rows):
    outcome = handler.process(_command("<!channel> <https://evil.example|Free> 20"))

    assert outcome is CommandOutcome.REPORTED
    # The ledger keeps exactly what the user typed.
    assert appended_rows()[0][2] == "<!channel> <https://evil.example|Free>"

    kwargs = web_client.chat_postMessage.call_args.kwargs
    posted = kwargs["text"] + str(kwargs["blocks"])
    assert "<!channel>" not in posted
    assert "<https://evil.example" not in posted
    assert "&lt;!channel&gt;" in kwargs["text"]
    assert "&lt;https://evil.example|Free&gt;" in str(kwargs["blocks"])


def test_purchaser_name_is_escaped(handler, web_client):
    web_client.users_info.return_value = {"ok": True, "user": {"real_name": "<!here> Mallory"}}

    handler.process(_command("Claude Pro $20"))

    blocks = str(web_client.chat_postMessage.call_args.kwargs["blocks"])
    assert "<!here>" not in blocks
    assert "&lt;!here&gt; Mallory" in blocks


def test_build_command_handler_wires_settings(mocker):
    sheets = mocker.patch("services.slack_gateway.handler.build_sheets_service")
    web_client = mocker.patch("services.slack_gateway.handler.build_web_client")
    settings = Settings(
        _env_file=None,
        slack_bot_token="xoxb-test",
        google_sheets_id="sheet-123",
        sheet_name="구매내역",
        ledger_timezone="UTC",
    )

    handler = build_command_handler(settings)

    web_client.assert_called_once_with("xoxb-test")
    sheets.assert_called_once_with(settings)
    assert handler.slack.client is web_client.return_value
    assert handler.ledger.sheet is sheets.return_value
    assert handler.ledger.spreadsheet_id == "sheet-123"
    assert handler.ledger.range == "구매내역!A:E"
    assert handler.spreadsheet_url == "https://docs.google.com/spreadsheets/d/sheet-123"
