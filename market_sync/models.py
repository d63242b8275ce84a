"""Typed records exchanged with the Pasardana API and the sqlite store.

Field aliases follow the API's PascalCase JSON keys; field names are the
storage column names. Records are frozen: stamping a value means building a
new record with ``model_copy(update=...)``.
"""
import datetime as dt
from typing import Any, ClassVar, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _coerce_date(value: Any) -> Any:
    # The API sends dates as "2024-01-02T00:00:00"; keep the date part only.
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        return value[:10]
    if isinstance(value, dt.datetime):
        return value.date()
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class Record(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    TABLE: ClassVar[str] = ""
    KEY_COLUMNS: ClassVar[Tuple[str, ...]] = ()


class ReferenceRecord(Record):
    """One row per entity key, updated in place over time."""

    @property
    def key(self):
        return getattr(self, self.KEY_COLUMNS[0])


class DailyRecord(Record):
    """Time-series observation keyed by (entity key, date)."""

    date: Optional[dt.date] = None

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value):
        return _coerce_date(value)

    @property
    def key(self):
        return getattr(self, self.KEY_COLUMNS[0])


# Stocks

class Stock(ReferenceRecord):
    TABLE: ClassVar[str] = "stocks"
    KEY_COLUMNS: ClassVar[Tuple[str, ...]] = ("code",)

    code: Optional[str] = Field(None, alias="Code")
    name: Optional[str] = Field(None, alias="Name")


class StockDaily(DailyRecord):
    TABLE: ClassVar[str] = "stock_daily"
    KEY_COLUMNS: ClassVar[Tuple[str, ...]] = ("code", "date")

    code: Optional[str] = Field(None, alias="Code")
    date: Optional[dt.date] = Field(None, alias="Date")
    opening_price: Optional[float] = Field(None, alias="OpeningPrice")
    closing_price: Optional[float] = Field(None, alias="ClosingPrice")
    high_price: Optional[float] = Field(None, alias="HighPrice")
    low_price: Optional[float] = Field(None, alias="LowPrice")
    volume: Optional[float] = Field(None, alias="Volume")
    market_cap: Optional[float] = Field(None, alias="MarketCap")
    created_at: Optional[dt.date] = None


class ReportDetail(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    property_id: int = Field(alias="PropertyId")
    value: Optional[float] = Field(None, alias="Value")


class StockReportPayload(BaseModel):
    """One (code, period) report as returned by GetStockReports."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    code: str = Field(alias="Code")
    period: str = Field(alias="Period")
    last_update: Optional[dt.datetime] = Field(None, alias="LastUpdate")
    details: List[ReportDetail] = Field(default_factory=list, alias="Details")

    @field_validator("last_update", mode="before")
    @classmethod
    def _blank_last_update(cls, value):
        return _blank_to_none(value)

    @field_validator("details", mode="before")
    @classmethod
    def _null_details(cls, value):
        return value or []


class StockReport(Record):
    TABLE: ClassVar[str] = "stock_reports"
    KEY_COLUMNS: ClassVar[Tuple[str, ...]] = ("code", "period", "property_id")

    code: str
    period: str
    property_id: int
    value: Optional[float] = None
    last_update: Optional[dt.datetime] = None


class ReportValueUpdate(NamedTuple):
    code: str
    period: str
    property_id: int
    value: Optional[float]
    last_update: Optional[dt.datetime]


# Bonds

class BondIdEntry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    bond_id: Optional[int] = Field(None, alias="BondId")
    bond_code: Optional[str] = Field(None, alias="BondCode")


class Bond(ReferenceRecord):
    TABLE: ClassVar[str] = "bonds"
    KEY_COLUMNS: ClassVar[Tuple[str, ...]] = ("code",)

    code: Optional[str] = Field(None, alias="Code")
    isin_code: Optional[str] = Field(None, alias="IsinCode")
    name: Optional[str] = Field(None, alias="Name")
    type: Optional[str] = Field(None, alias="Type")
    bond_id: Optional[int] = Field(None, alias="BondId")
    interest_rate: Optional[float] = Field(None, alias="InterestRate")
    interest_type: Optional[str] = Field(None, alias="InterestType")
    interest_frequency_code: Optional[str] = Field(None, alias="InterestFrequencyCode")
    interest_frequency: Optional[str] = Field(None, alias="InterestFrequency")
    issue_date: Optional[dt.datetime] = Field(None, alias="IssueDate")
    listing_date: Optional[dt.datetime] = Field(None, alias="ListingDate")
    mature_date: Optional[dt.datetime] = Field(None, alias="MatureDate")
    sharia: Optional[bool] = Field(None, alias="Sharia")

    @field_validator("issue_date", "listing_date", "mature_date", mode="before")
    @classmethod
    def _blank_dates(cls, value):
        return _blank_to_none(value)


class BondDaily(DailyRecord):
    TABLE: ClassVar[str] = "bond_daily"
    KEY_COLUMNS: ClassVar[Tuple[str, ...]] = ("bond_code", "date")

    bond_code: Optional[str] = Field(None, alias="BondCode")
    date: Optional[dt.date] = Field(None, alias="Date")
    bond_id: Optional[int] = Field(None, alias="BondId")
    is_transacted: Optional[bool] = Field(None, alias="IsTransacted")
    date_based: Optional[dt.datetime] = Field(None, alias="DateBased")
    high_price: Optional[float] = Field(None, alias="HighPrice")
    low_price: Optional[float] = Field(None, alias="LowPrice")
    last_price: Optional[float] = Field(None, alias="LastPrice")
    wap: Optional[float] = Field(None, alias="Wap")
    total_vol: Optional[float] = Field(None, alias="TotalVol")
    total_val: Optional[float] = Field(None, alias="TotalVal")
    freq: Optional[float] = Field(None, alias="Freq")
    one_day_return: Optional[float] = Field(None, alias="OneDayReturn")
    one_week_return: Optional[float] = Field(None, alias="OneWeekReturn")
    mtd_return: Optional[float] = Field(None, alias="MtdReturn")
    one_month_return: Optional[float] = Field(None, alias="OneMonthReturn")
    three_month_return: Optional[float] = Field(None, alias="ThreeMonthReturn")
    six_month_return: Optional[float] = Field(None, alias="SixMonthReturn")
    ytd_return: Optional[float] = Field(None, alias="YtdReturn")
    one_year_return: Optional[float] = Field(None, alias="OneYearReturn")
    three_year_return: Optional[float] = Field(None, alias="ThreeYearReturn")
    five_year_return: Optional[float] = Field(None, alias="FiveYearReturn")
    ten_year_return: Optional[float] = Field(None, alias="TenYearReturn")
    inception_return: Optional[float] = Field(None, alias="InceptionReturn")
    ttm: Optional[float] = None
    ytm: Optional[float] = None
    current_yield: Optional[float] = None
    modified_duration: Optional[float] = None
    outstanding_amount: Optional[float] = None
    additional_wap: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_additional_data(cls, data):
        if not isinstance(data, dict) or "AdditionalData" not in data:
            return data
        data = dict(data)
        extra = data.pop("AdditionalData") or {}
        data.setdefault("additional_wap", extra.get("Wap"))
        data.setdefault("ttm", extra.get("Ttm"))
        data.setdefault("ytm", extra.get("Ytm"))
        data.setdefault("current_yield", extra.get("CurrentYield"))
        data.setdefault("modified_duration", extra.get("ModifiedDuration"))
        data.setdefault("outstanding_amount", extra.get("OutstandingAmount"))
        return data

    @field_validator("date_based", mode="before")
    @classmethod
    def _blank_date_based(cls, value):
        return _blank_to_none(value)


# Funds

class Fund(ReferenceRecord):
    TABLE: ClassVar[str] = "funds"
    KEY_COLUMNS: ClassVar[Tuple[str, ...]] = ("id",)

    id: Optional[int] = Field(None, alias="Id")
    name: Optional[str] = Field(None, alias="Name")
    type: Optional[int] = Field(None, alias="Type")
    active: Optional[bool] = Field(None, alias="IsActive")
    sharia: Optional[bool] = Field(None, alias="Sharia")


class FundDaily(DailyRecord):
    """Daily net asset value."""

    TABLE: ClassVar[str] = "fund_daily"
    KEY_COLUMNS: ClassVar[Tuple[str, ...]] = ("fund_id", "date")

    fund_id: Optional[int] = Field(None, alias="FundId")
    date: Optional[dt.date] = Field(None, alias="Date")
    value: Optional[float] = Field(None, alias="Value")
    daily_return: Optional[float] = Field(None, alias="DailyReturn")


class FundAum(DailyRecord):
    TABLE: ClassVar[str] = "fund_aum"
    KEY_COLUMNS: ClassVar[Tuple[str, ...]] = ("fund_id", "date")

    fund_id: Optional[int] = Field(None, alias="FundId")
    date: Optional[dt.date] = Field(None, alias="Date")
    value: Optional[float] = Field(None, alias="Value")


class FundUnit(DailyRecord):
    TABLE: ClassVar[str] = "fund_unit"
    KEY_COLUMNS: ClassVar[Tuple[str, ...]] = ("fund_id", "date")

    fund_id: Optional[int] = Field(None, alias="FundId")
    date: Optional[dt.date] = Field(None, alias="Date")
    value: Optional[float] = Field(None, alias="Value")
