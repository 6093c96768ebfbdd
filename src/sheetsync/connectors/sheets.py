"""
Google Sheets sink using a service account.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..exceptions import ConfigurationError, SheetsAPIError
from ..models.config import SinkTarget
from .base import BaseSink

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

VALUE_INPUT_OPTION = "USER_ENTERED"


class GoogleSheetsSink(BaseSink):
    """Writes rows to Google Sheets through the v4 values API."""

    def __init__(
        self,
        service_account_path: Optional[str] = None,
        enabled: bool = True,
        service: Any = None,
        **kwargs
    ):
        """
        Initialize the sink.

        Args:
            service_account_path: Path to a service account JSON key
            enabled: Whether uploads are performed at all
            service: Pre-built Sheets service (used instead of building one)
        """
        super().__init__(enabled=enabled, **kwargs)
        self.service_account_path = service_account_path
        self._service = service

    def is_connected(self) -> bool:
        if self._service is not None:
            return True
        return bool(self.service_account_path) and os.path.exists(self.service_account_path)

    def _load_credentials(self) -> service_account.Credentials:
        if not self.service_account_path:
            raise ConfigurationError("SHEETS_SERVICE_ACCOUNT_JSON is required for service-account mode")
        key_file = self.service_account_path
        try:
            with open(key_file, "r", encoding="utf-8") as f:
                info = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read service account JSON at {key_file}: {e}") from e

        for field in ("client_email", "private_key"):
            if not info.get(field):
                raise ConfigurationError(
                    f"Service account JSON at {key_file} is missing {field}. "
                    "Download a JSON key from Google Cloud."
                )
        return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)

    @property
    def service(self) -> Any:
        """The Sheets API service, built on first use."""
        if not self.enabled:
            raise ConfigurationError("Google Sheets uploads are disabled")
        if self._service is None:
            try:
                credentials = self._load_credentials()
                self._service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
            except GoogleAuthError as e:
                raise SheetsAPIError(f"Google authentication failed: {e}") from e
            logger.info("Google Sheets service initialized")
        return self._service

    def _execute(self, request: Any, action: str) -> Dict[str, Any]:
        try:
            return request.execute() or {}
        except HttpError as e:
            logger.error(f"Sheets {action} failed: {e}")
            raise SheetsAPIError(f"Sheets {action} failed: {e}") from e
        except GoogleAuthError as e:
            raise SheetsAPIError(f"Google authentication failed during {action}: {e}") from e

    def read_current_grid(self, target: SinkTarget) -> List[List[Any]]:
        request = self.service.spreadsheets().values().get(
            spreadsheetId=target.spreadsheet_id,
            range=target.read_range,
        )
        return self._execute(request, "values.get").get("values", [])

    def _replace(self, target: SinkTarget, header: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        values = self.service.spreadsheets().values()
        self._execute(
            values.clear(spreadsheetId=target.spreadsheet_id, range=target.clear_range or target.tab, body={}),
            "values.clear",
        )
        grid = [list(header), *map(list, rows)] if header else [list(row) for row in rows]
        self._write_grid(target, grid)

    def _append(self, target: SinkTarget, rows: Sequence[Sequence[Any]]) -> None:
        request = self.service.spreadsheets().values().append(
            spreadsheetId=target.spreadsheet_id,
            range=target.write_range,
            valueInputOption=VALUE_INPUT_OPTION,
            insertDataOption="INSERT_ROWS",
            body={"values": [list(row) for row in rows]},
        )
        self._execute(request, "values.append")

    def _write_grid(self, target: SinkTarget, values: Sequence[Sequence[Any]]) -> None:
        request = self.service.spreadsheets().values().update(
            spreadsheetId=target.spreadsheet_id,
            range=target.write_range,
            valueInputOption=VALUE_INPUT_OPTION,
            body={"values": [list(row) for row in values]},
        )
        self._execute(request, "values.update")
