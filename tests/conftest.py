# tests/conftest.py
from typing import Callable
from unittest.mock import MagicMock

import pytest

from libs.sheets import LedgerAppender
from libs.slack_client import SlackGateway
from services.slack_gateway.handler import PurchaseCommandHandler

SHEET_ID = "1AbCdEfGhIjKlMnOpQrStUvWxYz"
SHEET_URL = f"https://docs.google.com/spreadsheets/d/{SHEET_ID}"


@pytest.fixture
def web_client() -> MagicMock:
    """Fake `slack_sdk.WebClient` with a user that has every name field set."""
    client = MagicMock()
    client.users_info.return_value = {
        "ok": True,
        "user": {
            "id": "U123",
            "name": "gildong",
            "real_name": "홍길동",
            "profile": {"real_name": "홍길동", "display_name": "길동"},
        },
    }
    return client


@pytest.fixture
def spreadsheets() -> MagicMock:
    """Fake `service.spreadsheets()` resource from googleapiclient."""
    sheet = MagicMock()
    sheet.values.return_value.append.return_value.execute.return_value = {
        "spreadsheetId": SHEET_ID,
        "updates": {"updatedRange": "Sheet1!A2:E2", "updatedRows": 1},
    }
    return sheet


@pytest.fixture
def ledger(spreadsheets: MagicMock) -> LedgerAppender:
    return LedgerAppender(spreadsheets, SHEET_ID, "Sheet1!A:E")


@pytest.fixture
def handler(web_client: MagicMock, ledger: LedgerAppender) -> PurchaseCommandHandler:
    return PurchaseCommandHandler(SlackGateway(web_client), ledger, SHEET_URL)


@pytest.fixture
def appended_rows(spreadsheets: MagicMock) -> Callable[[], list[list]]:
    """Rows the code under test sent to `values().append`, in call order."""

    def _rows() -> list[list]:
        calls = spreadsheets.values.return_value.append.call_args_list
        return [c.kwargs["body"]["values"][0] for c in calls]

    return _rows
