"""
Single default per group: keeps exactly one record of each group flagged
as its default across saves and deletes on a RecordStore.
"""

from defaults.settings import DefaultSettings, InvalidConfiguration
from defaults.resolver import NeighbourResolver
from defaults.keeper import DefaultKeeper

__all__ = ["DefaultKeeper", "DefaultSettings", "InvalidConfiguration", "NeighbourResolver"]
