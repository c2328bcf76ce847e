"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import JSON, Numeric, Uuid

# Use JSON instead of JSONB for cross-database compatibility
JSONType = JSON

# Native UUID on PostgreSQL, CHAR(32) elsewhere
UUIDType = Uuid

# Quantities keep full precision; money is stored to the paisa
QuantityType = Numeric(18, 6)
MoneyType = Numeric(14, 2)
RateType = Numeric(14, 4)
PercentType = Numeric(5, 2)
