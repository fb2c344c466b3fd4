"""
Storage layer for crawled pages.
"""

from .database import DatabaseError, PageStore, initialize_database
from .writer import PageWriter

__all__ = ['DatabaseError', 'PageStore', 'initialize_database', 'PageWriter']
