from sqlmodel import Field, SQLModel
from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Index, Text, func
from typing import Dict, List, Optional
import pydantic
from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from datetime import datetime, timezone

from .enums import SortMode


# largest value a signed 64-bit BIGINT column holds
MAX_POPULATION = 2**63 - 1


def as_utc_isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class BaseSchema(BaseModel):
    class Config:
        json_encoders = {datetime: as_utc_isoformat}


class Country(SQLModel, table=True):
    __tablename__ = "countries"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=255)
    capital: Optional[str] = Field(default=None, max_length=255)
    region: Optional[str] = Field(default=None, max_length=255, index=True)
    population: int = Field(sa_column=Column(BigInteger, nullable=False))
    currency_code: Optional[str] = Field(default=None, max_length=10, index=True)
    exchange_rate: Optional[float] = None
    estimated_gdp: Optional[float] = Field(default=None, index=True)
    flag_url: Optional[str] = Field(default=None, sa_column=Column(Text))
    last_refreshed_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )


# "Japan" and "JAPAN" are the same row
Index(
    "uq_countries_name_lower",
    func.lower(Country.__table__.c.name),
    unique=True,
)


class SystemStatus(SQLModel, table=True):
    __tablename__ = "system_status"
    __table_args__ = (CheckConstraint("id = 1", name="ck_system_status_singleton"),)

    id: int = Field(default=1, primary_key=True)
    total_countries: int = Field(default=0)
    last_refreshed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )


class CountryCreate(BaseModel):
    """Validated field set written by an upsert."""

    name: str = pydantic.Field(min_length=1, max_length=255)
    capital: Optional[str] = pydantic.Field(default=None, max_length=255)
    region: Optional[str] = pydantic.Field(default=None, max_length=255)
    population: int = pydantic.Field(ge=0, le=MAX_POPULATION)
    currency_code: Optional[str] = pydantic.Field(default=None, max_length=10)
    exchange_rate: Optional[float] = pydantic.Field(default=None, gt=0)
    estimated_gdp: Optional[float] = pydantic.Field(default=None, ge=0)
    flag_url: Optional[str] = None

    @field_validator("currency_code")
    @classmethod
    def upper_case_code(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value is not None else None

    @model_validator(mode="after")
    def gdp_follows_rate(self):
        if (self.estimated_gdp is None) != (self.exchange_rate is None):
            raise ValueError("estimated_gdp must be null exactly when exchange_rate is null")
        return self


class CurrencyEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: Optional[str] = None
    symbol: Optional[str] = None


class RawExternalCountry(BaseModel):
    """One country as seen in the current refresh cycle, already normalized."""

    model_config = ConfigDict(frozen=True)

    name: str
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int
    flag: Optional[str] = None
    currencies: Optional[List[CurrencyEntry]] = None


class ExchangeRateSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    base: str = "USD"
    rates: Dict[str, float] = pydantic.Field(default_factory=dict)


class CountryFilters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    region: Optional[str] = None
    currency: Optional[str] = None
    sort: Optional[SortMode] = None


class CountryResponse(BaseSchema):
    id: int
    name: str
    capital: Optional[str]
    region: Optional[str]
    population: int
    currency_code: Optional[str]
    exchange_rate: Optional[float]
    estimated_gdp: Optional[float]
    flag_url: Optional[str]
    last_refreshed_at: datetime


class SummaryOut(BaseSchema):
    total_countries: int
    last_refreshed_at: Optional[datetime]


class RefreshResult(BaseModel):
    success: bool
    processed: int
    errors: List[str] = pydantic.Field(default_factory=list)


class RefreshOut(RefreshResult):
    message: str
