# libs/sheets.py
"""Google Sheets ledger: one purchase == one appended row.

Column layout (A → E): date, purchaser, item, amount, note.
Rows are appended with ``valueInputOption=USER_ENTERED`` so Sheets turns the
amount into a number and the date into a date cell.
"""
from __future__ import annotations

import logging
import time
from datetime import date, datetime
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build

from libs.config import Settings
from libs.models import AppendResult, PurchaseRecord
from libs.sentry import sentry_capture

__all__ = [
    "LedgerAppender",
    "build_sheets_service",
    "format_ledger_date",
]

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
TOKEN_URI = "https://oauth2.googleapis.com/token"


def build_sheets_service(settings: Settings) -> Any:
    """Sheets v4 ``spreadsheets()`` resource authorised by the service account."""
    creds = Credentials.from_service_account_info(
        {
            "type": "service_account",
            "client_email": settings.google_service_account_email,
            "private_key": settings.google_private_key_pem,
            "token_uri": TOKEN_URI,
        },
        scopes=SCOPES,
    )
    service = build("sheets", "v4", credentials=creds, cache_discovery=False)
    return service.spreadsheets()


def format_ledger_date(day: date) -> str:
    """Korean locale short date, e.g. ``2026. 10. 19.``"""
    return f"{day.year}. {day.month}. {day.day}."


class LedgerAppender:
    def __init__(
        self,
        spreadsheets: Any,
        spreadsheet_id: str,
        range_: str = "Sheet1!A:E",
        *,
        timezone: str = "Asia/Seoul",
        on_append: Optional[Callable[[float], None]] = None,
    ):
        self.sheet = spreadsheets
        self.spreadsheet_id = spreadsheet_id
        self.range = range_
        self.tz = ZoneInfo(timezone)
        self._on_append = on_append

    def today(self) -> str:
        return format_ledger_date(datetime.now(self.tz).date())

    def append(
        self,
        purchaser: str,
        item: str,
        amount: float,
        day: Optional[str] = None,
    ) -> AppendResult:
        """Append ``[date, purchaser, item, amount, ""]``; never raises."""
        started = time.perf_counter()
        try:
            record = PurchaseRecord(
                date=day or self.today(),
                purchaser=purchaser,
                item=item,
                amount=amount,
            )
            result = self.sheet.values().append(
                spreadsheetId=self.spreadsheet_id,
                range=self.range,
                valueInputOption="USER_ENTERED",
                body={"values": [record.as_row()]},
            ).execute()
        except Exception as exc:  # noqa: BLE001 – reported to the user as a failed append
            logger.exception("Error adding to spreadsheet")
            sentry_capture(exc, extras={"item": item, "purchaser": purchaser})
            return AppendResult(ok=False, error=str(exc) or type(exc).__name__)
        finally:
            if self._on_append is not None:
                self._on_append(time.perf_counter() - started)

        updated_range = (result or {}).get("updates", {}).get("updatedRange")
        logger.info("Successfully added to spreadsheet: %s", updated_range)
        return AppendResult(ok=True, updated_range=updated_range)
