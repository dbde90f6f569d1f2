from datetime import datetime
from typing import Optional, List, Dict, Any
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =========================
# Enums
# =========================
class ChartType(str, Enum):
    BAR = "bar"
    LINE = "line"
    PIE = "pie"
    DOUGHNUT = "doughnut"
    TABLE = "table"


# =========================
# AUTH
# =========================
class StoreTokenRequest(BaseModel):
    store_url: str = Field(min_length=1)
    api_key: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


# =========================
# CHART SPEC
# =========================
class ChartSpec(BaseModel):
    """
    Declarative chart description produced by the AI alongside the SQL.
    Field names on the wire are camelCase (dataKey, labelKey, ...).
    """

    type: ChartType
    title: str
    data_key: str = Field(alias="dataKey")
    label_key: str = Field(alias="labelKey")
    x_label: Optional[str] = Field(default=None, alias="xLabel")
    y_label: Optional[str] = Field(default=None, alias="yLabel")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("title", "data_key", "label_key")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class ChartMeta(BaseModel):
    """Keys a client needs to rebuild a chart as a different type."""

    title: Optional[str] = None
    data_key: str = Field(alias="dataKey")
    label_key: str = Field(alias="labelKey")
    x_label: Optional[str] = Field(default=None, alias="xLabel")
    y_label: Optional[str] = Field(default=None, alias="yLabel")

    model_config = ConfigDict(populate_by_name=True)


class ChartSpecSummary(BaseModel):
    type: ChartType
    title: str


# =========================
# AI PIPELINE
# =========================
class SqlValidationResult(BaseModel):
    valid: bool
    sql: str
    errors: List[str] = []


class StoreContext(BaseModel):
    store_id: str
    currency: str = "USD"
    total_orders: int = 0
    total_products: int = 0
    total_customers: int = 0
    total_categories: int = 0
    earliest_order_date: Optional[datetime] = None
    latest_order_date: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class AIQueryResult(BaseModel):
    sql: str
    params: List[str]
    explanation: str
    chart_spec: Optional[ChartSpec] = Field(default=None, alias="chartSpec")

    model_config = ConfigDict(populate_by_name=True)


class QueryExecutionResult(BaseModel):
    rows: List[Dict[str, Any]]
    row_count: int
    duration_ms: float
    truncated: bool = False


# =========================
# CHAT API
# =========================
class ChatQueryRequest(BaseModel):
    question: str = Field(min_length=1, max_length=2000)

    model_config = ConfigDict(extra="forbid")


class ChatResponse(BaseModel):
    answer: str
    sql: str
    rows: List[Dict[str, Any]]
    row_count: int
    duration_ms: float
    chart_spec: Optional[ChartSpecSummary] = None
    chart_config: Optional[Dict[str, Any]] = None
    chart_meta: Optional[ChartMeta] = None


class SuggestionsResponse(BaseModel):
    suggestions: List[str]


class ChartConvertRequest(BaseModel):
    chart_config: Dict[str, Any]
    rows: List[Dict[str, Any]] = []
    target_type: ChartType
    meta: ChartMeta


class ChartConvertResponse(BaseModel):
    chart_config: Optional[Dict[str, Any]] = None
