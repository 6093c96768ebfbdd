"""
Ledger connector: a REST client for an Actual Budget HTTP bridge and the
extractors that turn its data into records.
"""

import logging
from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Type

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..exceptions import ConfigurationError, LedgerAPIError
from ..models.config import AppSettings, LedgerTarget, SyncUnit
from .base import Record, RecordExtractor

logger = logging.getLogger(__name__)


class LedgerClient:
    """Client for an actual-http-api style ledger bridge."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        sync_id: str,
        encryption_password: Optional[str] = None,
        timeout: float = 30
    ):
        """Initialize the ledger client.

        Args:
            base_url: Base URL of the bridge (the /v1 prefix is added per request)
            api_key: Bridge API key
            sync_id: Budget sync id to read from
            encryption_password: Budget encryption password, when the budget is encrypted
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.sync_id = sync_id
        self.timeout = timeout

        # Configure session with retries
        self.session = requests.Session()
        retry_strategy = Retry(
            total=3,
            status_forcelist=[429, 500, 502, 503, 504],
            backoff_factor=1
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        self.session.headers.update({
            'x-api-key': api_key,
            'Accept': 'application/json',
            'User-Agent': 'sheetsync/0.1.0'
        })
        if encryption_password:
            self.session.headers['budget-encryption-password'] = encryption_password

    def _make_request(self, method: str, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make a request to the bridge and unwrap its data envelope.

        Raises:
            LedgerAPIError: If the request fails
        """
        url = f"{self.base_url}/v1/budgets/{self.sync_id}{endpoint}"

        try:
            logger.debug(f"Making {method} request to {url} with params: {params}")
            response = self.session.request(method, url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Ledger API request failed: {e}")
            if getattr(e, 'response', None) is not None:
                raise LedgerAPIError(f"HTTP {e.response.status_code}: {e.response.text}") from e
            raise LedgerAPIError(f"Request failed: {e}") from e
        except ValueError as e:
            raise LedgerAPIError(f"Invalid JSON from {url}: {e}") from e

        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    def get_accounts(self) -> List[Dict[str, Any]]:
        """List every account in the budget."""
        return self._make_request('GET', '/accounts') or []

    def get_account_balance(self, account_id: str) -> float:
        """Current balance of one account, in minor units."""
        return self._make_request('GET', f'/accounts/{account_id}/balance')

    def get_transactions(self, account_id: str, since_date: Optional[str] = None) -> List[Dict[str, Any]]:
        """Transactions of one account, optionally from a start date (YYYY-MM-DD)."""
        params = {"since_date": since_date or "1970-01-01"}
        return self._make_request('GET', f'/accounts/{account_id}/transactions', params=params) or []


class BaseExtractor(ABC):
    """Turns ledger data into flat records."""

    def __init__(self, client: LedgerClient):
        self.client = client

    @abstractmethod
    def extract(self, options: Dict[str, Any]) -> List[Record]:
        """Extract records using source options from the sheet definition."""
        pass


class BalancesExtractor(BaseExtractor):
    """One record per account with its current balance."""

    def _balance(self, account: Dict[str, Any]) -> float:
        balance = account.get("balance")
        if isinstance(balance, (int, float)) and not isinstance(balance, bool) and balance == balance:
            return balance
        try:
            return self.client.get_account_balance(account["id"])
        except LedgerAPIError as e:
            logger.warning(f"getAccountBalance failed for {account.get('id')}; falling back to 0: {e}")
            return 0

    def extract(self, options: Dict[str, Any]) -> List[Record]:
        accounts = self.client.get_accounts()
        return [
            {
                "accountId": account.get("id"),
                "accountName": account.get("name"),
                "type": account.get("type"),
                "balance": self._balance(account),
                "offBudget": bool(account.get("offbudget")),
                "closed": bool(account.get("closed")),
            }
            for account in accounts
        ]


class TransactionsExtractor(BaseExtractor):
    """One record per transaction, optionally limited by account and age."""

    def extract(self, options: Dict[str, Any]) -> List[Record]:
        try:
            days = int(options.get("days") or 0)
        except (TypeError, ValueError):
            days = 0
        since_date = (date.today() - timedelta(days=days)).isoformat() if days > 0 else None

        account_id = options.get("accountId") or options.get("account_id")
        if isinstance(account_id, str) and account_id:
            account_ids = [account_id]
        else:
            account_ids = [account["id"] for account in self.client.get_accounts()]

        records = []
        for current_id in account_ids:
            for txn in self.client.get_transactions(current_id, since_date):
                records.append({
                    "transactionId": txn.get("id"),
                    "date": txn.get("date"),
                    "amount": txn.get("amount"),
                    "payee": txn.get("payee_name") or txn.get("payee"),
                    "category": txn.get("category_name") or txn.get("category"),
                    "memo": txn.get("memo") or txn.get("notes") or "",
                    "accountId": txn.get("account_id") or txn.get("account") or current_id,
                })
        logger.info(f"Retrieved {len(records)} transactions from {len(account_ids)} accounts")
        return records


# Extractor registry for dynamic loading
EXTRACTOR_REGISTRY: Dict[str, Type[BaseExtractor]] = {
    "balances": BalancesExtractor,
    "transactions": TransactionsExtractor,
}


class LedgerExtractor(RecordExtractor):
    """Extracts a unit's records from the ledger target it references."""

    def __init__(
        self,
        settings: AppSettings,
        client_factory: Optional[Callable[[LedgerTarget], LedgerClient]] = None
    ):
        self.settings = settings
        self.client_factory = client_factory or self._create_client

    def _create_client(self, target: LedgerTarget) -> LedgerClient:
        return LedgerClient(
            base_url=self.settings.ledger_server_url,
            api_key=self.settings.ledger_api_key,
            sync_id=target.sync_id,
            encryption_password=self.settings.encryption_password,
        )

    def extract(self, unit: SyncUnit) -> List[Record]:
        target = self.settings.resolve_target(unit.sync_target)
        if target is None:
            raise ConfigurationError(f"Sheet {unit.id} references unknown sync target {unit.sync_target}")

        extractor_class = EXTRACTOR_REGISTRY.get(unit.source.type)
        if extractor_class is None:
            raise ConfigurationError(f"Unsupported source type: {unit.source.type}")

        logger.info(f"Extracting {unit.source.type} for sheet {unit.id} from budget {target.sync_id}")
        data = extractor_class(self.client_factory(target)).extract(dict(unit.source.options))
        return list(data) if isinstance(data, list) else []
