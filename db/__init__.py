"""Database package for the outbound-calling CRM core."""
from db.connection import configure, dispose_engine, get_db, run_in_transaction

__all__ = ["configure", "get_db", "run_in_transaction", "dispose_engine"]
