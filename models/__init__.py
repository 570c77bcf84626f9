"""
SQLAlchemy ORM models for database tables.

Models:
    base: Declarative bases and shared enums (SourceType, RunStatus, OutcomeStatus)
    analytics: Destination tables loaded by the pipeline (identity primary keys)
    source: Relational source tables read by the database extractor
    etl_run: Pipeline run history

Database Schema:
    Destination tables and run history inherit from ``Base`` and are created
    by ``scripts/init_db.py``. Source tables inherit from ``SourceBase`` and
    are owned by the source system.

Usage:
    from models.analytics import Customer, Product, Order, OrderDetail
    from models.source import ReviewRow
    from models.etl_run import ETLRun
    from models.base import RunStatus, OutcomeStatus

Relationships:
    - Customer → Order (one-to-many via orders.customer_id)
    - Order → OrderDetail (one-to-many via order_details.order_id)
    - Product → OrderDetail (one-to-many via order_details.product_id)
"""

__all__ = [
    "Base",
    "SourceBase",
    "SourceType",
    "RunStatus",
    "OutcomeStatus",
    "Customer",
    "Product",
    "Order",
    "OrderDetail",
    "ReviewRow",
    "ETLRun",
]
