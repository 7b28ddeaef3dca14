"""
Civic DAO backend package initializer

Keep this module lightweight. Do not import the API or chain modules here,
so importing the store in tests does not pull in FastAPI or httpx.
"""

__all__ = []
