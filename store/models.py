"""
Example record types for the store.
Each is a @dataclass subclassing Record.
"""

from dataclasses import dataclass

from store.base import Record


@dataclass
class Page(Record):
    """A CMS page; each folder has one default (landing) page."""
    folder: str = "/"
    title: str = ""
    ordering: int = 0
    visible: bool = True
    default: bool = False


@dataclass
class Address(Record):
    """A postal address; each user has one default address."""
    user_id: int = 0
    label: str = ""
    line1: str = ""
    city: str = ""
    is_primary: bool = False
