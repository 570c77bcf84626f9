"""
Entities moved through staging into the analytics destination.

``LOADED_ENTITIES`` is listed in destination dependency order: parents are
loaded before the children that reference them.
"""

from dataclasses import dataclass
from typing import Type
from ingestion.transformers.cleaning import (
    TransformRule,
    customer_has_name,
    product_price_not_negative,
    transformed_name,
)
from schemas.records import Customer, Order, OrderDetail, Product, Record


@dataclass(frozen=True)
class EntitySpec:
    """Staging name, record type, destination table and cleaning rule of one entity"""
    staging_name: str
    record_type: Type[Record]
    table_name: str
    rule: TransformRule

    @property
    def pk_column(self) -> str:
        return self.record_type.primary_key

    @property
    def transformed_name(self) -> str:
        return transformed_name(self.staging_name)


CUSTOMERS = EntitySpec(
    staging_name="Customers",
    record_type=Customer,
    table_name="customers",
    rule=TransformRule(Customer, predicate=customer_has_name),
)

PRODUCTS = EntitySpec(
    staging_name="Products",
    record_type=Product,
    table_name="products",
    rule=TransformRule(Product, predicate=product_price_not_negative),
)

ORDERS = EntitySpec(
    staging_name="Orders",
    record_type=Order,
    table_name="orders",
    rule=TransformRule(Order),
)

ORDER_DETAILS = EntitySpec(
    staging_name="OrderDetails",
    record_type=OrderDetail,
    table_name="order_details",
    rule=TransformRule(OrderDetail, deduplicate=False),
)

LOADED_ENTITIES = (CUSTOMERS, PRODUCTS, ORDERS, ORDER_DETAILS)

# Staged for inspection only; not transformed or loaded
REVIEWS_STAGING_NAME = "Reviews"
API_REVIEWS_STAGING_NAME = "ApiReviews"
COMMENTS_STAGING_NAME = "Comments"
