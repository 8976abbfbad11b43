# services/slack_gateway/handler.py
"""Slash-command orchestration: ack → parse → resolve user → append → report.

The HTTP layer calls :meth:`PurchaseCommandHandler.acknowledge` to build the
synchronous reply and schedules :meth:`PurchaseCommandHandler.process` to run
after the response has been sent. ``process`` always ends in one of the
:class:`~libs.models.CommandOutcome` states and never raises.
"""
from __future__ import annotations

import logging
from typing import Any

from libs.config import Settings
from libs.models import CommandOutcome, InboundCommand
from libs.regexes import parse_purchase_text
from libs.sentry import sentry_capture
from libs.sheets import LedgerAppender, build_sheets_service
from libs.slack_client import SlackGateway, build_web_client

from services.slack_gateway.metrics import LEDGER_APPEND_SECONDS, USER_LOOKUP_FAIL, record_outcome

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = "/ai구매"

ACK_TEXT = "⏳ 구매 내역을 처리하고 있습니다..."
USAGE_TEXT = "사용법: {command} [프로그램명] [금액]\n예시: {command} ChatGPT Plus $20"
FORMAT_ERROR_TEXT = "❌ 형식이 올바르지 않습니다.\n" + USAGE_TEXT
APPEND_FAILED_TEXT = "❌ 구글 시트 등록에 실패했습니다. 관리자에게 문의해주세요."
RETRY_TEXT = "⚠️ 처리 중 오류가 발생했습니다. 잠시 후 다시 시도해주세요."
SUCCESS_TEXT = "✅ 구매 내역 등록 완료! {item} ({amount})"


def format_amount(amount: float) -> str:
    """``20000.0`` → ``20,000``; ``20.5`` → ``20.5``."""
    return f"{amount:,.2f}".rstrip("0").rstrip(".")


def escape_mrkdwn(value: str) -> str:
    """Neutralise Slack control sequences (`<!channel>`, `<url|label>`) in user text."""
    return value.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


class PurchaseCommandHandler:
    def __init__(self, slack: SlackGateway, ledger: LedgerAppender, spreadsheet_url: str):
        self.slack = slack
        self.ledger = ledger
        self.spreadsheet_url = spreadsheet_url

    # ------------------------------------------------------------------ #
    # Synchronous part
    # ------------------------------------------------------------------ #
    def acknowledge(self, command: InboundCommand) -> dict[str, str]:
        if not command.text:
            return {"text": self._usage(command), "response_type": "ephemeral"}
        return {"text": ACK_TEXT, "response_type": "ephemeral"}

    # ------------------------------------------------------------------ #
    # Deferred part
    # ------------------------------------------------------------------ #
    def process(self, command: InboundCommand) -> CommandOutcome:
        outcome = self._run(command)
        record_outcome(outcome)
        logger.info("Command from %s finished: %s", command.user_id, outcome.value)
        return outcome

    def _run(self, command: InboundCommand) -> CommandOutcome:
        text = command.text
        if not text:
            return CommandOutcome.USAGE_HINT

        try:
            parsed = parse_purchase_text(text)
            if parsed is None:
                logger.info("Unparsable purchase text: %r", text)
                self.slack.post_ephemeral(
                    command.channel_id,
                    command.user_id,
                    FORMAT_ERROR_TEXT.format(command=self._command_name(command)),
                )
                return CommandOutcome.PARSE_FAILED

            lookup = self.slack.resolve_user_name(command.user_id)
            if not lookup.resolved:
                USER_LOOKUP_FAIL.inc()
                logger.info("Using placeholder purchaser for %s (%s)", command.user_id, lookup.error)

            day = self.ledger.today()
            result = self.ledger.append(lookup.name, parsed.item, parsed.amount, day)
            if not result:
                self.slack.post_ephemeral(command.channel_id, command.user_id, APPEND_FAILED_TEXT)
                return CommandOutcome.APPEND_FAILED

            summary, blocks = self._confirmation(lookup.name, parsed.item, parsed.amount, day)
            self.slack.post_message(command.channel_id, summary, blocks)
            return CommandOutcome.REPORTED
        except Exception as exc:  # noqa: BLE001 – last line of defence after the ack
            logger.exception("Unhandled error while processing %r", text)
            sentry_capture(exc, extras={"user_id": command.user_id, "text": text})
            self._notify_retry(command)
            return CommandOutcome.ERRORED

    def _notify_retry(self, command: InboundCommand) -> None:
        try:
            self.slack.post_ephemeral(command.channel_id, command.user_id, RETRY_TEXT)
        except Exception as exc:  # noqa: BLE001
            logger.error("Could not deliver error message to %s: %s", command.user_id, exc)
            sentry_capture(exc)

    # ------------------------------------------------------------------ #
    # Messages
    # ------------------------------------------------------------------ #
    @staticmethod
    def _command_name(command: InboundCommand) -> str:
        return command.command_name or DEFAULT_COMMAND

    def _usage(self, command: InboundCommand) -> str:
        return USAGE_TEXT.format(command=self._command_name(command))

    def _confirmation(
        self, purchaser: str, item: str, amount: float, day: str
    ) -> tuple[str, list[dict[str, Any]]]:
        amount_text = format_amount(amount)
        purchaser = escape_mrkdwn(purchaser)
        item = escape_mrkdwn(item)
        blocks: list[dict[str, Any]] = [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": "*✅ 구매 내역 등록 완료!*"},
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*구입자:*\n{purchaser}"},
                    {"type": "mrkdwn", "text": f"*프로그램:*\n{item}"},
                    {"type": "mrkdwn", "text": f"*금액:*\n{amount_text}"},
                    {"type": "mrkdwn", "text": f"*날짜:*\n{day}"},
                ],
            },
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": f"<{self.spreadsheet_url}|📊 스프레드시트에서 보기>"},
                ],
            },
        ]
        return SUCCESS_TEXT.format(item=item, amount=amount_text), blocks


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------
def build_command_handler(settings: Settings) -> PurchaseCommandHandler:
    """Construct the Slack and Sheets clients once, at process start."""
    slack = SlackGateway(build_web_client(settings.slack_bot_token))
    ledger = LedgerAppender(
        build_sheets_service(settings),
        settings.google_sheets_id,
        settings.ledger_range,
        timezone=settings.ledger_timezone,
        on_append=LEDGER_APPEND_SECONDS.observe,
    )
    return PurchaseCommandHandler(slack, ledger, settings.spreadsheet_url)
