"""Transcript sinks: publishers and the markdown minutes writer."""
from .publisher import CompositePublisher, LogPublisher, Publisher
from .writer import MinutesWriter, format_minutes_entry, minutes_page_title, page_url

__all__ = [
    "CompositePublisher",
    "LogPublisher",
    "MinutesWriter",
    "Publisher",
    "format_minutes_entry",
    "minutes_page_title",
    "page_url",
]
