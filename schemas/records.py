"""
Pydantic record schemas shared by every pipeline phase.

Records are immutable value objects. Each record type declares the field
that acts as its primary key; the transform stage de-duplicates on it and
the loader uses it for identity-insert handling.

Field matching is tolerant of the spelling used by the source systems:
``CustomerID``, ``customerId``, ``customer_id`` and ``Customer ID`` all
resolve to ``customer_id``. Unknown fields are ignored and blank strings are
read as missing values. Records serialize with the PascalCase source names
(``CustomerID``), which is the stable field naming of staging files.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


def _source_alias(field_name: str) -> str:
    """customer_id -> CustomerID"""
    return "".join(
        "ID" if part == "id" else part.capitalize()
        for part in field_name.split("_")
    )


def _fold(name: str) -> str:
    """Case- and separator-insensitive form of a field name"""
    return "".join(ch for ch in name.lower() if ch.isalnum())


def parse_datetime(value: Any) -> Any:
    """Accept ISO dates, ISO datetimes and a trailing Z; leave anything else to pydantic"""
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


class Record(BaseModel):
    """Base class for all extracted record types"""

    primary_key: ClassVar[str]

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
        alias_generator=_source_alias,
    )

    @model_validator(mode="before")
    @classmethod
    def match_field_names(cls, data: Any) -> Any:
        """Map incoming keys onto declared fields, case-insensitively"""
        if not isinstance(data, dict):
            return data

        lookup: Dict[str, str] = {}
        for name, info in cls.model_fields.items():
            lookup[_fold(name)] = name
            if info.alias:
                lookup[_fold(info.alias)] = name

        resolved: Dict[str, Any] = {}
        for key, value in data.items():
            field_name = lookup.get(_fold(str(key)))
            if field_name is None or field_name in resolved:
                continue
            if isinstance(value, str) and not value.strip():
                value = None
            resolved[field_name] = value
        return resolved

    @property
    def key(self) -> Any:
        """Value of the declared primary key"""
        return getattr(self, self.primary_key)


class Customer(Record):
    primary_key: ClassVar[str] = "customer_id"

    customer_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    @property
    def has_name(self) -> bool:
        return bool(self.first_name) or bool(self.last_name)


class Product(Record):
    primary_key: ClassVar[str] = "product_id"

    product_id: int
    product_name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[Decimal] = None
    stock: Optional[int] = None


class Order(Record):
    primary_key: ClassVar[str] = "order_id"

    order_id: int
    customer_id: Optional[int] = None
    order_date: Optional[datetime] = None
    status: Optional[str] = None

    @field_validator("order_date", mode="before")
    @classmethod
    def parse_order_date(cls, value):
        return parse_datetime(value)


class OrderDetail(Record):
    primary_key: ClassVar[str] = "order_detail_id"

    order_detail_id: int
    order_id: Optional[int] = None
    product_id: Optional[int] = None
    quantity: Optional[int] = None
    total_price: Optional[Decimal] = None


class Review(Record):
    primary_key: ClassVar[str] = "review_id"

    review_id: int
    order_id: Optional[int] = None
    customer_id: Optional[int] = None
    product_id: Optional[int] = None
    rating: Optional[int] = None
    comment: Optional[str] = None
    review_date: Optional[datetime] = None

    @field_validator("review_date", mode="before")
    @classmethod
    def parse_review_date(cls, value):
        return parse_datetime(value)


class Comment(Record):
    primary_key: ClassVar[str] = "comment_id"

    comment_id: int
    order_id: Optional[int] = None
    customer_id: Optional[int] = None
    content: Optional[str] = None
    created_date: Optional[datetime] = None
    status: Optional[str] = None

    @field_validator("created_date", mode="before")
    @classmethod
    def parse_created_date(cls, value):
        return parse_datetime(value)
