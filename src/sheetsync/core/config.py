"""Configuration management for sheetsync."""

import os
import re
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from ..models.config import AppConfig, AppSettings, LedgerTarget, SyncUnit

logger = logging.getLogger(__name__)

DEFAULT_SHEETS_CONFIG_PATH = os.path.join("config", "sheets.yml")
DEFAULT_CRON = "0 3 * * *"

ENV_PATTERN = re.compile(r"\$\{env:([A-Z0-9_]+)\}", re.IGNORECASE)


def setup_logging(level: str = "INFO") -> None:
    """Set up logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def load_environment(env_file: Optional[str] = None) -> None:
    """Load environment variables from .env file.

    Args:
        env_file: Path to .env file. If None, looks for .env in current directory.
    """
    if env_file:
        env_path = Path(env_file)
    else:
        env_path = Path('.env')

    if env_path.exists():
        load_dotenv(env_path)
        logger.info(f"Loaded environment from {env_path}")
    else:
        logger.debug(f"No .env file found at {env_path}")


def get_required_env(key: str, env: Optional[Mapping[str, str]] = None) -> str:
    """Get a required environment variable.

    Raises:
        ConfigurationError: If the environment variable is not set
    """
    value = (env if env is not None else os.environ).get(key)
    if not value:
        raise ConfigurationError(f"Required environment variable {key} is not set")
    return value


def get_optional_env(key: str, default: str = "", env: Optional[Mapping[str, str]] = None) -> str:
    """Get an optional environment variable, treating empty values as unset."""
    return (env if env is not None else os.environ).get(key) or default


def parse_bool(value: Optional[str], fallback: bool = False) -> bool:
    """Interpret an environment flag; only 1/true/yes/on count as true."""
    if value is None or str(value).strip() == "":
        return fallback
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def ensure_absolute(target_path: Optional[str], cwd: Optional[str] = None) -> Optional[str]:
    """Resolve a path against the working directory unless already absolute."""
    if not target_path:
        return None
    if os.path.isabs(target_path):
        return target_path
    return os.path.join(cwd or os.getcwd(), target_path)


def parse_sync_targets(sync_id: Optional[str], backup_sync_ids: Optional[str]) -> List[LedgerTarget]:
    """
    Build the ledger targets from ACTUAL_SYNC_ID or BACKUP_SYNC_ID.

    BACKUP_SYNC_ID is a comma separated list of ``syncId`` or
    ``budgetId:syncId`` entries; duplicates are dropped. When it is set,
    ACTUAL_SYNC_ID is ignored.

    Raises:
        ConfigurationError: If an entry is malformed or no target is defined
    """
    targets: List[LedgerTarget] = []
    if backup_sync_ids:
        seen = set()
        for entry in (part.strip() for part in backup_sync_ids.split(",")):
            if not entry:
                continue
            parts = entry.split(":")
            if len(parts) == 1:
                budget_id, sync_value = None, parts[0].strip()
                if not sync_value:
                    raise ConfigurationError("BACKUP_SYNC_ID entry missing sync id")
            else:
                budget_id, sync_value = parts[0].strip(), parts[1].strip()
                if not budget_id or not sync_value:
                    raise ConfigurationError("BACKUP_SYNC_ID entries must include both BudgetID and SyncID")
            key = (budget_id, sync_value)
            if key in seen:
                continue
            seen.add(key)
            targets.append(LedgerTarget(budget_id=budget_id, sync_id=sync_value))
    else:
        if not sync_id:
            raise ConfigurationError("ACTUAL_SYNC_ID is required")
        targets.append(LedgerTarget(sync_id=sync_id))

    if not targets:
        raise ConfigurationError("At least one sync target must be defined")
    return targets


def apply_env_placeholders(value: Any, env: Mapping[str, str]) -> Any:
    """Replace ``${env:NAME}`` in every string of a parsed YAML tree."""
    if isinstance(value, str):
        return ENV_PATTERN.sub(lambda match: env.get(match.group(1), ""), value)
    if isinstance(value, list):
        return [apply_env_placeholders(item, env) for item in value]
    if isinstance(value, dict):
        return {key: apply_env_placeholders(item, env) for key, item in value.items()}
    return value


def _normalise_sheet(sheet: Any, index: int, env: Mapping[str, str]) -> Dict[str, Any]:
    if not isinstance(sheet, dict):
        raise ConfigurationError(f"Sheet definition at index {index} must be a mapping")

    unit_id = sheet.get("id") or f"sheet-{index + 1}"
    spreadsheet_id = sheet.get("spreadsheetId") or env.get("SHEETS_DEFAULT_SPREADSHEET_ID")
    if not spreadsheet_id:
        raise ConfigurationError(f"Sheet {unit_id} is missing spreadsheetId")

    source = sheet.get("source") or {}
    if not isinstance(source, dict) or not source.get("type"):
        raise ConfigurationError(f"Sheet {unit_id} is missing source.type")

    transform = sheet.get("transform") or {"columns": []}
    columns = transform.get("columns") if isinstance(transform, dict) else None
    if not isinstance(columns, list) or not columns:
        raise ConfigurationError(f"Sheet {unit_id} must define at least one transform column")

    return {
        **sheet,
        "id": str(unit_id),
        "spreadsheetId": spreadsheet_id,
        "tab": sheet.get("tab") or "Sheet1",
        "syncTarget": sheet.get("syncTarget") or "default",
        "source": {"type": source["type"], "options": source.get("options") or {}},
        "transform": transform,
    }


def load_sheet_config(config_path: Optional[str], env: Mapping[str, str]) -> Tuple[List[SyncUnit], List[str]]:
    """
    Load the sheet definitions file.

    Args:
        config_path: Path to the YAML file
        env: Environment used for placeholders and the default spreadsheet id

    Returns:
        The ordered units and any non-fatal warnings

    Raises:
        ConfigurationError: If a definition is invalid
    """
    if not config_path:
        return [], ["SHEETS_CONFIG_PATH not set; no sheets configured."]

    resolved = ensure_absolute(config_path)
    if not os.path.exists(resolved):
        return [], [f"Sheet config not found at {resolved}"]

    try:
        with open(resolved, "r", encoding="utf-8") as f:
            parsed = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {resolved}: {e}") from e

    parsed = apply_env_placeholders(parsed, env)
    sheets = parsed.get("sheets") if isinstance(parsed, dict) else None
    if not isinstance(sheets, list):
        sheets = []

    units = []
    for index, sheet in enumerate(sheets):
        data = _normalise_sheet(sheet, index, env)
        try:
            units.append(SyncUnit.model_validate(data))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid definition for sheet {data['id']}: {e}") from e

    seen = set()
    for unit in units:
        if unit.id in seen:
            raise ConfigurationError(f"Duplicate sheet id: {unit.id}")
        seen.add(unit.id)

    logger.info(f"Loaded {len(units)} sheet definitions from {resolved}")
    return units, []


def load_settings(env: Optional[Mapping[str, str]] = None, once: bool = False) -> AppSettings:
    """
    Build settings from the environment.

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    env = env if env is not None else os.environ

    try:
        http_port = int(get_optional_env("HTTP_PORT", "4020", env))
    except ValueError as e:
        raise ConfigurationError(f"HTTP_PORT must be an integer: {e}") from e
    try:
        debounce_ms = float(get_optional_env("EVENT_DEBOUNCE_MS", "5000", env))
    except ValueError as e:
        raise ConfigurationError(f"EVENT_DEBOUNCE_MS must be a number: {e}") from e

    cron = get_optional_env("SHEETS_CRON", DEFAULT_CRON, env).strip() or None

    try:
        return AppSettings(
            ledger_server_url=get_required_env("ACTUAL_SERVER_URL", env),
            ledger_api_key=get_required_env("ACTUAL_API_KEY", env),
            sync_targets=parse_sync_targets(env.get("ACTUAL_SYNC_ID"), env.get("BACKUP_SYNC_ID")),
            encryption_password=env.get("ACTUAL_BUDGET_ENCRYPTION_PASSWORD") or None,
            sheets_config_path=ensure_absolute(get_optional_env("SHEETS_CONFIG_PATH", DEFAULT_SHEETS_CONFIG_PATH, env)),
            default_spreadsheet_id=env.get("SHEETS_DEFAULT_SPREADSHEET_ID") or None,
            sheets_enabled=parse_bool(env.get("ENABLE_SHEETS"), True),
            sheets_mode=get_optional_env("SHEETS_MODE", "service-account", env).lower(),
            service_account_path=ensure_absolute(env.get("SHEETS_SERVICE_ACCOUNT_JSON")),
            global_cron=cron,
            schedule_timezone=env.get("SCHEDULE_TIMEZONE") or None,
            once=once,
            events_enabled=parse_bool(env.get("ENABLE_EVENT_STREAM"), False),
            events_url=env.get("ACTUAL_EVENTS_URL") or None,
            events_token=env.get("ACTUAL_EVENTS_TOKEN") or None,
            event_debounce_ms=debounce_ms,
            http_port=http_port,
            public_url=env.get("PUBLIC_URL") or None,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e


def load_config(env: Optional[Mapping[str, str]] = None, once: bool = False) -> AppConfig:
    """
    Load settings and sheet definitions.

    Raises:
        ConfigurationError: On fatal misconfiguration
    """
    env = env if env is not None else os.environ
    settings = load_settings(env, once=once)
    units, warnings = load_sheet_config(settings.sheets_config_path, env)
    for warning in warnings:
        logger.warning(warning)
    return AppConfig(settings=settings, units=units, warnings=warnings)
