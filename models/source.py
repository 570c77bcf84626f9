from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from models.base import SourceBase


class ReviewRow(SourceBase):
    """
    Product reviews as stored in the relational source database.

    Only read by ingestion.extractors.database_extractor; this service never
    writes to the source database.
    """
    __tablename__ = "reviews"

    review_id = Column(Integer, primary_key=True)
    order_id = Column(Integer, nullable=True)
    customer_id = Column(Integer, nullable=True)
    product_id = Column(Integer, nullable=True)
    rating = Column(Integer, nullable=True)
    comment = Column(Text, nullable=True)
    review_date = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_reviews_review_date", "review_date"),
    )
