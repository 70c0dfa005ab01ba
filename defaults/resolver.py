"""
NeighbourResolver — chooses and promotes the replacement default of a group.

Two policies, selected by DefaultSettings.love_thy_neighbour:
- nearest neighbour: the row right after the reference in group order,
  otherwise the row right before it
- first in set: the smallest row in group order

Group order is order_fields with the primary key appended as a tie-break,
so every row has a unique position.
"""

import logging
from typing import Optional

from store.base import KEY


log = logging.getLogger("defaults.resolver")


class NeighbourResolver:

    def __init__(self, store, record_cls, settings):
        self.store = store
        self.record_cls = record_cls
        self.settings = settings
        fields = list(settings.order_fields)
        if KEY not in fields:
            fields.append(KEY)
        self.sort_fields = tuple(fields)

    def candidate(self, conditions, reference):
        """The record that would receive the default, without writing."""
        if self.settings.love_thy_neighbour:
            position = tuple(reference.get(f) for f in self.sort_fields)
            neighbours = self.store.find_neighbours(
                self.record_cls, conditions, self.sort_fields, position,
            )
            return neighbours.next if neighbours.next is not None else neighbours.prev
        return self.store.find_one(self.record_cls, conditions, order=self.sort_fields)

    def resolve(self, conditions, reference) -> Optional[int]:
        """
        Promote the chosen record to default with a hook-free write.
        Returns its id, or None when `conditions` match no record.
        """
        chosen = self.candidate(conditions, reference)
        if chosen is None:
            log.debug("No replacement default for %s %s",
                      self.record_cls.__name__, reference._store_id)
            return None
        self.store.set_field(
            self.record_cls, chosen._store_id, self.settings.default_field, True,
        )
        log.info("Passed default of %s from %s to %s",
                 self.record_cls.__name__, reference._store_id, chosen._store_id)
        return chosen._store_id
