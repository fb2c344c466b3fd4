"""
Wiki Crawler

A concurrent crawler that walks a web encyclopedia breadth-first and
persists the extracted pages to a relational store.
"""

__version__ = "1.0.0"
__description__ = "A concurrent crawl-and-persist engine for web encyclopedias"
