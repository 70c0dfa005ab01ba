"""
DefaultSettings — per-type configuration of the single-default behaviour.

Fixed at attachment time and validated once:
  default_field       boolean attribute marking the group's default
  order_fields        non-empty ordering; first field is the primary sort key
  group_fields        attributes partitioning the table ([] = one group)
  love_thy_neighbour  True: pass the default to the next (else previous) row;
                      False: pass it to the first row of the group
  group_conditions    field → value tests a row must pass to hold the default
  lock_groups         serialise events per group with a store lock
"""

import dataclasses
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping, Tuple, Union, get_args, get_origin

from store.base import KEY


class InvalidConfiguration(Exception):
    """Raised when settings are malformed or name unknown fields."""


def _field_tuple(name, value) -> Tuple[str, ...]:
    # A bare string is rejected rather than wrapped into a one-item list
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise InvalidConfiguration(
            f"'{name}' must be a list of field names, got {value!r}"
        )
    for item in value:
        if not isinstance(item, str) or not item:
            raise InvalidConfiguration(
                f"'{name}' entries must be non-empty strings, got {item!r}"
            )
    if len(set(value)) != len(value):
        raise InvalidConfiguration(f"'{name}' contains duplicates: {list(value)}")
    return tuple(value)


# Stored as JSON objects or arrays, so jsonb compares them by structure and
# their encoded text rather than by value.
_UNORDERED_TYPES = (Decimal, dict, list, tuple, set, frozenset)
_UNORDERED_NAMES = {t.__name__ for t in _UNORDERED_TYPES} | {"Dict", "List", "Tuple", "Set"}


def _orders_by_value(annotation) -> bool:
    if isinstance(annotation, str):
        return annotation.split("[", 1)[0].split(".")[-1] not in _UNORDERED_NAMES
    origin = get_origin(annotation) or annotation
    if origin is Union:
        return all(_orders_by_value(a) for a in get_args(annotation) if a is not type(None))
    return not (isinstance(origin, type) and issubclass(origin, _UNORDERED_TYPES))


@dataclasses.dataclass(frozen=True)
class DefaultSettings:
    default_field: str = "default"
    order_fields: Tuple[str, ...] = (KEY,)
    group_fields: Tuple[str, ...] = ()
    love_thy_neighbour: bool = True
    group_conditions: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    lock_groups: bool = False

    def __post_init__(self):
        if not isinstance(self.default_field, str) or not self.default_field:
            raise InvalidConfiguration(
                f"'default_field' must be a non-empty string, got {self.default_field!r}"
            )
        order_fields = _field_tuple("order_fields", self.order_fields)
        if not order_fields:
            raise InvalidConfiguration("'order_fields' must name at least one field")
        group_fields = _field_tuple("group_fields", self.group_fields)
        if not isinstance(self.love_thy_neighbour, bool):
            raise InvalidConfiguration(
                f"'love_thy_neighbour' must be a bool, got {self.love_thy_neighbour!r}"
            )
        if not isinstance(self.lock_groups, bool):
            raise InvalidConfiguration(
                f"'lock_groups' must be a bool, got {self.lock_groups!r}"
            )
        if not isinstance(self.group_conditions, Mapping):
            raise InvalidConfiguration(
                f"'group_conditions' must be a mapping, got {self.group_conditions!r}"
            )
        if self.default_field in group_fields:
            raise InvalidConfiguration(
                f"'{self.default_field}' cannot be both the default field and a group field"
            )
        # frozen: normalise through object.__setattr__
        object.__setattr__(self, "order_fields", order_fields)
        object.__setattr__(self, "group_fields", group_fields)
        object.__setattr__(
            self, "group_conditions", MappingProxyType(dict(self.group_conditions))
        )

    @classmethod
    def from_mapping(cls, config: Mapping) -> "DefaultSettings":
        """Build settings from a plain mapping, rejecting unknown keys."""
        if not isinstance(config, Mapping):
            raise InvalidConfiguration(f"Settings must be a mapping, got {config!r}")
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(config) - known)
        if unknown:
            raise InvalidConfiguration(
                f"Unknown setting(s) {unknown}. Allowed: {sorted(known)}"
            )
        return cls(**config)

    def validate(self, record_cls):
        """Check every configured field exists on `record_cls` and order fields sort by value."""
        available = record_cls.field_names()
        named = [self.default_field, *self.order_fields, *self.group_fields,
                 *self.group_conditions]
        missing = [name for name in named if name not in available]
        if missing:
            raise InvalidConfiguration(
                f"{record_cls.__name__} has no field(s) {missing}. "
                f"Available: {sorted(available)}"
            )
        if self.default_field == KEY:
            raise InvalidConfiguration("The primary key cannot be the default field")
        if dataclasses.is_dataclass(record_cls):
            types = {f.name: f.type for f in dataclasses.fields(record_cls)}
            unordered = [name for name in self.order_fields
                         if name in types and not _orders_by_value(types[name])]
            if unordered:
                raise InvalidConfiguration(
                    f"{record_cls.__name__} order field(s) {unordered} are stored as "
                    f"JSON objects or arrays and do not sort by value"
                )
