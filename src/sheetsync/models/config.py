"""
Configuration models for sync units and application settings.
"""

import math
from enum import Enum
from typing import Dict, List, Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SyncMode(str, Enum):
    """How rows are written to the sheet."""
    REPLACE = "replace"
    APPEND = "append"
    UPSERT = "upsert"


# Spelling used by older sheet definitions
MODE_ALIASES = {
    "clear-and-replace": SyncMode.REPLACE,
}


def to_string_list(value: Any) -> List[str]:
    """Coerce a list or comma-separated string into a list of strings."""
    if value is None or value == "" or value is False:
        return []
    if isinstance(value, (list, tuple)):
        return ["" if entry is None else str(entry) for entry in value]
    return [entry.strip() for entry in str(value).split(",") if entry.strip()]


class ColumnSpec(BaseModel):
    """One output column: a header label and how to compute its value."""
    model_config = ConfigDict(frozen=True)

    label: Optional[str] = Field(None, description="Header label for the column")
    value: Any = Field(None, description="Field name, literal, ${expression}, =formula or callable")

    @property
    def header(self) -> str:
        if self.label:
            return self.label
        if isinstance(self.value, str) and self.value:
            return self.value
        return ""


class SortRule(BaseModel):
    """Sort rows by a column, referenced by label or by value spec."""
    model_config = ConfigDict(frozen=True)

    column: Optional[str] = None
    direction: str = Field("asc", description="asc or desc")

    @field_validator("direction", mode="before")
    @classmethod
    def normalise_direction(cls, v):
        return (v or "asc").lower()


class PostProcess(BaseModel):
    """Post-processing applied to transformed rows."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sort_by: List[SortRule] = Field(default_factory=list, alias="sortBy")

    @field_validator("sort_by", mode="before")
    @classmethod
    def wrap_single_rule(cls, v):
        # A single rule may be given without a list
        if v is None:
            return []
        if isinstance(v, (dict, SortRule)):
            return [v]
        return v


class TransformSpec(BaseModel):
    """Column definitions plus optional filter and sort rules."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    columns: List[ColumnSpec] = Field(default_factory=list)
    filter: Any = Field(None, description="Expression string or callable; absent keeps every record")
    post_process: Optional[PostProcess] = Field(None, alias="postProcess")


class SourceSpec(BaseModel):
    """Which ledger extractor feeds a unit."""
    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Extractor name (balances, transactions)")
    options: Dict[str, Any] = Field(default_factory=dict)


class EventSubscription(BaseModel):
    """Which ledger events re-run a unit, and how long to debounce them."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    entities: List[str] = Field(default_factory=list)
    types: List[str] = Field(default_factory=list)
    debounce_ms: Optional[float] = Field(None, alias="debounceMs")

    @field_validator("entities", "types", mode="before")
    @classmethod
    def split_lists(cls, v):
        return to_string_list(v)

    @field_validator("debounce_ms", mode="before")
    @classmethod
    def parse_debounce(cls, v):
        if isinstance(v, bool) or v is None:
            return None
        if isinstance(v, (int, float)):
            return v if math.isfinite(v) else None
        if isinstance(v, str):
            try:
                parsed = float(v)
            except ValueError:
                return None
            return parsed if math.isfinite(parsed) else None
        return None

    @property
    def is_empty(self) -> bool:
        return not self.entities and not self.types


class SinkTarget(BaseModel):
    """Where in a spreadsheet a unit writes."""
    model_config = ConfigDict(frozen=True)

    spreadsheet_id: str
    tab: str = "Sheet1"
    range: Optional[str] = None
    clear_range: Optional[str] = None

    @property
    def write_range(self) -> str:
        return self.range or f"{self.tab}!A1"

    @property
    def read_range(self) -> str:
        """Range covering the whole written grid, not just its anchor cell."""
        if not self.range:
            return self.tab
        if ":" in self.range:
            return self.range
        anchor = self.range if "!" in self.range else f"{self.tab}!{self.range}"
        # Open-ended to the right and downwards from the anchor
        return f"{anchor}:ZZZ"


class SyncUnit(BaseModel):
    """
    One configured ledger-to-sheet synchronization.
    Created once at configuration load and never mutated.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    # Identity
    id: str = Field(..., description="Unique identifier for this unit")
    title: Optional[str] = Field(None, description="Human-readable name")

    # Sink target
    spreadsheet_id: str = Field(..., alias="spreadsheetId")
    tab: str = Field("Sheet1")
    range: Optional[str] = Field(None)
    clear_range: Optional[str] = Field(None, alias="clearRange")
    mode: SyncMode = Field(SyncMode.REPLACE)
    key_columns: List[str] = Field(default_factory=list, alias="keyColumns")

    # Source and transformation
    source: SourceSpec
    sync_target: str = Field("default", alias="syncTarget")
    transform: TransformSpec = Field(default_factory=TransformSpec)

    # Triggers
    cron: Optional[str] = Field(None, description="Unit-specific cron expression")
    events: Optional[EventSubscription] = Field(None)

    @field_validator("mode", mode="before")
    @classmethod
    def normalise_mode(cls, v):
        if v is None or v == "":
            return SyncMode.REPLACE
        if isinstance(v, str):
            v = v.strip().lower()
            return MODE_ALIASES.get(v, v)
        return v

    @field_validator("key_columns", mode="before")
    @classmethod
    def stringify_keys(cls, v):
        if not isinstance(v, (list, tuple)):
            return []
        return [str(column) for column in v]

    @field_validator("cron", mode="before")
    @classmethod
    def normalise_cron(cls, v):
        value = (v or "").strip() if isinstance(v, str) else v
        return value or None

    @model_validator(mode="before")
    @classmethod
    def default_title(cls, data):
        if isinstance(data, dict) and not data.get("title"):
            data = {**data, "title": data.get("id")}
        return data

    @model_validator(mode="after")
    def check_upsert_keys(self):
        if self.mode == SyncMode.UPSERT and not self.key_columns:
            raise ValueError(f"Sheet {self.id} uses upsert mode but does not define keyColumns")
        return self

    @property
    def target(self) -> SinkTarget:
        return SinkTarget(
            spreadsheet_id=self.spreadsheet_id,
            tab=self.tab,
            range=self.range,
            clear_range=self.clear_range,
        )


class LedgerTarget(BaseModel):
    """A ledger budget a unit can read from."""
    model_config = ConfigDict(frozen=True)

    alias: Optional[str] = None
    budget_id: Optional[str] = None
    sync_id: str


class AppSettings(BaseModel):
    """Environment-level settings."""

    # Ledger
    ledger_server_url: str
    ledger_api_key: str
    sync_targets: List[LedgerTarget] = Field(..., min_length=1)
    encryption_password: Optional[str] = None

    # Sheets
    sheets_config_path: Optional[str] = None
    default_spreadsheet_id: Optional[str] = None
    sheets_enabled: bool = True
    sheets_mode: str = "service-account"
    service_account_path: Optional[str] = None

    # Scheduling
    global_cron: Optional[str] = "0 3 * * *"
    schedule_timezone: Optional[str] = None
    once: bool = False

    # Events
    events_enabled: bool = False
    events_url: Optional[str] = None
    events_token: Optional[str] = None
    event_debounce_ms: float = 5000

    # HTTP
    http_port: int = 4020
    public_url: Optional[str] = None

    def resolve_target(self, name: Optional[str]) -> Optional[LedgerTarget]:
        """Resolve a unit's syncTarget; unknown names fall back to the primary target."""
        aliases: Dict[str, LedgerTarget] = {"default": self.sync_targets[0]}
        for target in self.sync_targets:
            aliases[target.sync_id] = target
            if target.alias:
                aliases[target.alias] = target
        return aliases.get(name or "default") or aliases.get("default")


class AppConfig(BaseModel):
    """Settings plus the ordered sync units, read-only after startup."""
    settings: AppSettings
    units: List[SyncUnit] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def get_unit(self, unit_id: str) -> Optional[SyncUnit]:
        return next((unit for unit in self.units if unit.id == unit_id), None)
