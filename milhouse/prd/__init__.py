"""Requirement record store: models, persistence, selection, lifecycle."""

from milhouse.prd.models import InvalidStatus, Requirement, Status
from milhouse.prd.store import Store, StoreError, load_store, save_store
from milhouse.prd.selector import select_next

__all__ = [
    "InvalidStatus",
    "Requirement",
    "Status",
    "Store",
    "StoreError",
    "load_store",
    "save_store",
    "select_next",
]
