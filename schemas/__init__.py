"""
Pydantic schemas for record validation and run reporting.

Schemas:
    records: Immutable record types moved by the pipeline (Customer, Product,
        Order, OrderDetail, Review, Comment) with declared primary keys
    pipeline: Staging snapshots and pipeline run outcomes

Features:
    - Case-insensitive field matching for CSV headers and JSON payloads
    - Type coercion and conversion
    - Stable JSON serialization for staging files

Usage:
    from schemas.records import Customer, Product
    from schemas.pipeline import PipelineRun, StagingSnapshot

Example:
    customer = Customer.model_validate({"CustomerID": "7", "firstName": " Ana "})

    assert customer.customer_id == 7
    assert customer.first_name == "Ana"
    assert customer.key == 7
"""

__all__ = [
    "Record",
    "Customer",
    "Product",
    "Order",
    "OrderDetail",
    "Review",
    "Comment",
    "StagingSnapshot",
    "SourceOutcome",
    "LoadOutcome",
    "PipelineRun",
]
