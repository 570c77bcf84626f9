from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Identity
from models.base import Base


class Customer(Base):
    """
    Customers dimension.

    Keys come from the CSV source, so the identity column must accept
    explicit values during loads (see ingestion.loaders.identity_loader).
    """
    __tablename__ = "customers"

    customer_id = Column(Integer, Identity(always=True), primary_key=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    city = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)


class Product(Base):
    """Products dimension"""
    __tablename__ = "products"

    product_id = Column(Integer, Identity(always=True), primary_key=True)
    product_name = Column(String(200), nullable=True)
    category = Column(String(100), nullable=True)
    price = Column(Numeric(12, 2), nullable=True)
    stock = Column(Integer, nullable=True)


class Order(Base):
    """Orders fact, child of customers"""
    __tablename__ = "orders"

    order_id = Column(Integer, Identity(always=True), primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.customer_id"), nullable=True, index=True)
    order_date = Column(DateTime, nullable=True, index=True)
    status = Column(String(50), nullable=True)


class OrderDetail(Base):
    """Order lines, child of orders and products"""
    __tablename__ = "order_details"

    order_detail_id = Column(Integer, Identity(always=True), primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.order_id"), nullable=True, index=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=True, index=True)
    quantity = Column(Integer, nullable=True)
    total_price = Column(Numeric(12, 2), nullable=True)
