"""
Declarative block scraper.

This package extracts structured records from paginated web pages
according to a payload describing the fields to extract, rather than
hand-written per-site scraping code.
"""

from blockscrape.compiler import new_scraper, new_task
from blockscrape.data_types import (
    Part,
    Results,
    ScrapeOptions,
    Scraper,
    Session,
    Task,
    TaskState,
)
from blockscrape.payload import Payload, load_payload

__all__ = [
    "Part",
    "Payload",
    "Results",
    "ScrapeOptions",
    "Scraper",
    "Session",
    "Task",
    "TaskState",
    "load_payload",
    "new_scraper",
    "new_task",
]
