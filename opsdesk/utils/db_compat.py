"""
Database compatibility helpers for SQLite and PostgreSQL.
"""
from sqlalchemy import func, cast, Date
from opsdesk.database import is_sqlite


def extract_date(column):
    """Extract YYYY-MM-DD from a datetime column."""
    if is_sqlite:
        return func.strftime("%Y-%m-%d", column)
    return func.to_char(cast(column, Date), "YYYY-MM-DD")
