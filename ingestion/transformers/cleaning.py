"""
Record cleaning applied between raw and transformed staging.

Rules are deliberately small: a validity filter, de-duplication by primary
key, or plain pass-through for child records without an independent
identity worth de-duplicating.
"""

from dataclasses import dataclass
from typing import Callable, Generic, Iterable, List, Optional, Type, TypeVar
from schemas.records import Customer, Product, Record
from core.exceptions import TransformationError
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Record)

TRANSFORMED_SUFFIX = "_Transformed"


def transformed_name(source_name: str) -> str:
    return f"{source_name}{TRANSFORMED_SUFFIX}"


def deduplicate_by_key(records: Iterable[T]) -> List[T]:
    """
    Keep exactly one record per primary key.

    Tie-break: the first record encountered in input order wins; later
    records sharing its key are dropped even if their other fields differ.
    Input order is the staged order, i.e. the order the source produced.
    """
    seen = set()
    unique: List[T] = []
    for record in records:
        if record.key in seen:
            continue
        seen.add(record.key)
        unique.append(record)
    return unique


def customer_has_name(customer: Customer) -> bool:
    """Customers need at least one of first or last name"""
    return customer.has_name


def product_price_not_negative(product: Product) -> bool:
    """Products with a negative price are rejected; a missing price is kept"""
    return product.price is None or product.price >= 0


@dataclass
class TransformResult(Generic[T]):
    records: List[T]
    dropped_invalid: int = 0
    dropped_duplicates: int = 0


@dataclass(frozen=True)
class TransformRule(Generic[T]):
    """
    Cleaning rule for one staged entity.

    Attributes:
        record_type: Expected record class
        predicate: Validity filter; records failing it are dropped
        deduplicate: Whether to de-duplicate by primary key
    """
    record_type: Type[T]
    predicate: Optional[Callable[[T], bool]] = None
    deduplicate: bool = True

    def apply(self, records: Iterable[T]) -> TransformResult[T]:
        records = list(records)

        for record in records:
            if not isinstance(record, self.record_type):
                raise TransformationError(
                    f"Expected {self.record_type.__name__} records, got {type(record).__name__}",
                    context={"record_type": self.record_type.__name__}
                )

        valid = records
        if self.predicate is not None:
            valid = [record for record in records if self.predicate(record)]

        unique = deduplicate_by_key(valid) if self.deduplicate else valid

        result = TransformResult(
            records=unique,
            dropped_invalid=len(records) - len(valid),
            dropped_duplicates=len(valid) - len(unique),
        )

        if result.dropped_invalid or result.dropped_duplicates:
            logger.info(
                f"{self.record_type.__name__}: dropped {result.dropped_invalid} invalid "
                f"and {result.dropped_duplicates} duplicate records"
            )
        return result
