"""
Record base class — defines how Python objects serialize to/from JSONB.
Subclass with @dataclass to create persistable types.

Store metadata:
- _store_id: primary key assigned by the store on first save
- the reserved field name "id" addresses the primary key in predicates
  and order fields
"""

import json
import uuid
import dataclasses
from datetime import datetime, date
from decimal import Decimal
from typing import Optional


KEY = "id"


class _JSONEncoder(json.JSONEncoder):
    """Handles datetime, date, Decimal, UUID, and dataclass serialization."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return {"__type__": "datetime", "value": obj.isoformat()}
        if isinstance(obj, date):
            return {"__type__": "date", "value": obj.isoformat()}
        if isinstance(obj, Decimal):
            return {"__type__": "Decimal", "value": str(obj)}
        if isinstance(obj, uuid.UUID):
            return {"__type__": "UUID", "value": str(obj)}
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)
        return super().default(obj)


def _json_decoder_hook(d):
    """Reconstruct special types from JSONB."""
    if "__type__" in d:
        t = d["__type__"]
        v = d["value"]
        if t == "datetime":
            return datetime.fromisoformat(v)
        if t == "date":
            return date.fromisoformat(v)
        if t == "Decimal":
            return Decimal(v)
        if t == "UUID":
            return uuid.UUID(v)
    return d


def to_plain_json(value):
    """Round-trip a value through the encoder, leaving JSON-native types only."""
    return json.loads(json.dumps(value, cls=_JSONEncoder))


class Record:
    """
    Base class for rows kept in a RecordStore.

    Subclass as a dataclass:

        @dataclass
        class Page(Record):
            folder: str = "/"
            title: str = ""
            ordering: int = 0
            visible: bool = True
            default: bool = False

    Then persist through a store:

        store.save(Page(folder="/", title="Home", ordering=1))
    """

    _store_id: Optional[int] = None

    def to_dict(self) -> dict:
        """Attribute snapshot of this record, without store metadata."""
        if dataclasses.is_dataclass(self):
            return dataclasses.asdict(self)
        return {
            k: v for k, v in self.__dict__.items()
            if not k.startswith("_store_")
        }

    def to_json(self) -> str:
        """Serialize this record to a JSON string for JSONB storage."""
        return json.dumps(self.to_dict(), cls=_JSONEncoder)

    def context(self) -> dict:
        """The stored JSON form plus the primary key, for predicate evaluation."""
        ctx = json.loads(self.to_json())
        ctx[KEY] = self._store_id
        return ctx

    def get(self, field: str):
        """Value of a field by name; "id" is the primary key."""
        if field == KEY:
            return self._store_id
        return getattr(self, field)

    @classmethod
    def from_json(cls, json_str: str, record_id=None) -> "Record":
        """Deserialize from a JSON string back to a typed object."""
        data = json.loads(json_str, object_hook=_json_decoder_hook)
        if dataclasses.is_dataclass(cls):
            # Filter to only fields the dataclass expects
            field_names = {f.name for f in dataclasses.fields(cls)}
            filtered = {k: v for k, v in data.items() if k in field_names}
            obj = cls(**filtered)
        else:
            obj = cls.__new__(cls)
            obj.__dict__.update(data)
        obj._store_id = record_id
        return obj

    @classmethod
    def field_names(cls) -> set:
        """Names usable in settings and predicates for this type."""
        if dataclasses.is_dataclass(cls):
            names = {f.name for f in dataclasses.fields(cls)}
        else:
            names = set()
        names.add(KEY)
        return names

    @classmethod
    def type_name(cls) -> str:
        """The type identifier stored in the database."""
        return f"{cls.__module__}.{cls.__qualname__}"

    def refresh_from(self, other: "Record"):
        """Copy attribute values and store metadata from another snapshot."""
        for name in other.to_dict():
            setattr(self, name, getattr(other, name))
        self._store_id = other._store_id
