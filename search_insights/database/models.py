from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, Float, Boolean, Index
from sqlalchemy.orm import declarative_base
from datetime import datetime

Base = declarative_base()

class SearchQueryRecord(Base):
    __tablename__ = "search_queries"

    id = Column(Integer, primary_key=True)

    # Query details
    query = Column(Text, nullable=False)  # normalized lowercase
    original_query = Column(Text)
    category = Column(String(100))
    results_count = Column(Integer, default=0)
    filters = Column(JSON)  # applied filters plus device/locale/geo enrichment

    # Intent enrichment (applied at write time)
    intent = Column(String(50))
    intent_confidence = Column(String(10))  # high, medium, low
    intent_keywords = Column(JSON)

    # Conversion flags
    added_to_cart = Column(Boolean, default=False)
    checkout_completed = Column(Boolean, default=False)
    order_total = Column(Float)
    converted_at = Column(DateTime)

    # Metadata
    user_id = Column(String(255))  # null for guests
    session_id = Column(String(255))
    user_agent = Column(String(500))

    created_at = Column(DateTime, default=datetime.utcnow)

class SearchConversionRecord(Base):
    __tablename__ = "search_conversions"

    id = Column(Integer, primary_key=True)

    search_query = Column(Text, nullable=False)
    original_query = Column(Text)
    conversion_type = Column(String(20), nullable=False)  # add_to_cart, checkout

    # Add to cart
    product_id = Column(String(255))
    product_name = Column(String(255))
    price = Column(Float)

    # Checkout
    order_id = Column(String(255))
    order_total = Column(Float)
    products = Column(JSON)  # [{id, name, price}]

    session_id = Column(String(255))
    user_id = Column(String(255))

    created_at = Column(DateTime, default=datetime.utcnow)

class SearchRefinementRecord(Base):
    __tablename__ = "search_refinements"

    id = Column(Integer, primary_key=True)
    session_id = Column(String(255))
    user_id = Column(String(255))

    previous_query = Column(Text)
    new_query = Column(Text)
    added_filters = Column(JSON)
    removed_filters = Column(JSON)
    previous_results_count = Column(Integer)
    new_results_count = Column(Integer)
    meta = Column(JSON)  # device/locale/geo

    created_at = Column(DateTime, default=datetime.utcnow)

class ZeroResultSearchRecord(Base):
    __tablename__ = "zero_result_searches"

    id = Column(Integer, primary_key=True)
    query = Column(Text, nullable=False)
    original_query = Column(Text)
    category = Column(String(100))
    filters = Column(JSON)
    suggestions = Column(JSON)  # suggestions generated at write time

    session_id = Column(String(255))
    user_id = Column(String(255))

    created_at = Column(DateTime, default=datetime.utcnow)

# Analytics indexes
Index('idx_search_queries_created', SearchQueryRecord.created_at)
Index('idx_search_queries_session_query', SearchQueryRecord.session_id, SearchQueryRecord.query)
Index('idx_search_conversions_created', SearchConversionRecord.created_at)
Index('idx_search_refinements_session_created', SearchRefinementRecord.session_id, SearchRefinementRecord.created_at)
Index('idx_zero_result_searches_created', ZeroResultSearchRecord.created_at)
