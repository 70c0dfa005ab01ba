"""
DefaultKeeper — maintains exactly one default record per group.

Attached to a RecordStore as a lifecycle hook for one record type:

    keeper = DefaultKeeper(store, Page, DefaultSettings(
        order_fields=("ordering",),
        group_fields=("folder",),
        group_conditions={"visible": True},
    )).attach()

On save:
  - the saved record is default and others in its group are too
      → clear the others
  - the saved record is not default and no other record in its group is
      → pass the default to a neighbour (NeighbourResolver); with no
        candidate, force it onto the saved record
On delete:
  - the deleted record is default → pass the default to a neighbour

Every corrective write goes through the store's plain write path
(update_many / set_field), so it never re-enters these hooks.
"""

import logging
from typing import Optional

from store.backend import lock_key
from store.base import KEY
from store.predicates import Const, Field, all_of, equals_all, matches
from defaults.resolver import NeighbourResolver
from defaults.settings import DefaultSettings


log = logging.getLogger("defaults.keeper")


class DefaultKeeper:

    def __init__(self, store, record_cls, settings=None):
        settings = settings if settings is not None else DefaultSettings()
        settings.validate(record_cls)
        self.store = store
        self.record_cls = record_cls
        self.settings = settings
        self.resolver = NeighbourResolver(store, record_cls, settings)
        self._eligibility = equals_all(settings.group_conditions)

    def attach(self):
        """Register on the store for save/delete events of the record type."""
        self.store.attach(self.record_cls, self)
        return self

    def detach(self):
        self.store.detach(self.record_cls, self)

    # ── Group scoping ─────────────────────────────────────────────────

    def group_values(self, record) -> dict:
        return {name: record.get(name) for name in self.settings.group_fields}

    def group_predicate(self, record, exclude_self=True):
        """Rows sharing the record's group that may hold the default."""
        return all_of(
            Field(KEY) != record._store_id if exclude_self else None,
            equals_all(self.group_values(record)),
            self._eligibility,
        )

    def is_eligible(self, record) -> bool:
        return matches(self._eligibility, record.context())

    def is_default(self, record) -> bool:
        return bool(record.get(self.settings.default_field))

    def _flagged(self):
        return Field(self.settings.default_field) == Const(True)

    def _lock(self, *records):
        if not self.settings.lock_groups:
            return
        keys = {lock_key(self.record_cls, self.group_values(r)) for r in records}
        # fixed order so two events never wait on each other
        for key in sorted(keys):
            self.store.lock(key)

    # ── Lifecycle hooks ───────────────────────────────────────────────

    def on_saved(self, record, created, previous=None):
        cls = self.record_cls
        field = self.settings.default_field
        moved = (previous is not None
                 and self.group_values(previous) != self.group_values(record))
        self._lock(record, *([previous] if moved else []))

        conditions = self.group_predicate(record)
        eligible = self.is_eligible(record)
        is_default = self.is_default(record)

        if is_default and not eligible:
            log.warning("%s %s does not meet the group conditions; revoking its default",
                        cls.__name__, record._store_id)
            self.store.set_field(cls, record._store_id, field, False)
            is_default = False

        other_defaults = self.store.count(cls, all_of(conditions, self._flagged()))

        if is_default and other_defaults:
            cleared = self.store.update_many(
                cls, all_of(conditions, self._flagged()), {field: False},
            )
            log.info("%s %s is the new default; cleared %d other(s)",
                     cls.__name__, record._store_id, cleared)
        elif not is_default and not other_defaults:
            promoted = self.resolver.resolve(conditions, record)
            if promoted is None and eligible:
                self.store.set_field(cls, record._store_id, field, True)
                log.info("%s %s forced default: no other candidate in its group",
                         cls.__name__, record._store_id)
            elif promoted is None:
                log.warning("Group %s of %s left without a default",
                            self.group_values(record), cls.__name__)
        else:
            log.debug("%s %s saved; group already consistent",
                      cls.__name__, record._store_id)

        if moved and self.is_default(previous):
            self._pass_from(previous)

    def on_before_delete(self, record):
        """Pass the default on before a default record is removed. Never vetoes."""
        self._lock(record)
        if self.is_default(record):
            self.resolver.resolve(self.group_predicate(record), record)
        return True

    def _pass_from(self, previous):
        """The record left the group of `previous`; hand that group's default on."""
        conditions = self.group_predicate(previous)
        if self.store.count(self.record_cls, all_of(conditions, self._flagged())):
            return
        self.resolver.resolve(conditions, previous)

    # ── Repair ────────────────────────────────────────────────────────

    def repair(self, record) -> Optional[int]:
        """
        Re-establish one default in the group of `record` (itself included).

        Extra defaults are cleared, keeping the first in group order; a
        defaultless group has its first eligible record promoted. Ineligible
        members lose any default flag. Returns the default's id, or None
        when the group has no eligible record.
        """
        cls = self.record_cls
        field = self.settings.default_field
        with self.store.transaction():
            self._lock(record)
            members = equals_all(self.group_values(record))
            if self._eligibility is not None:
                revoked = self.store.update_many(
                    cls, all_of(members, ~self._eligibility, self._flagged()),
                    {field: False},
                )
                if revoked:
                    log.warning("Revoked %d ineligible default(s) of %s in group %s",
                                revoked, cls.__name__, self.group_values(record))

            conditions = self.group_predicate(record, exclude_self=False)
            defaults = self.store.all(
                cls, all_of(conditions, self._flagged()), order=self.resolver.sort_fields,
            )
            if defaults:
                keep = defaults[0]._store_id
                if len(defaults) > 1:
                    self.store.update_many(
                        cls, all_of(conditions, self._flagged(), Field(KEY) != keep),
                        {field: False},
                    )
                    log.warning("Group %s of %s had %d defaults; kept %s",
                                self.group_values(record), cls.__name__,
                                len(defaults), keep)
                return keep

            first = self.store.find_one(cls, conditions, order=self.resolver.sort_fields)
            if first is None:
                return None
            self.store.set_field(cls, first._store_id, field, True)
            log.info("Group %s of %s had no default; promoted %s",
                     self.group_values(record), cls.__name__, first._store_id)
            return first._store_id
