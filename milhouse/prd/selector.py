"""Selection policy for the planner."""

from typing import Optional

from milhouse.prd.models import Requirement
from milhouse.prd.store import Store


def select_next(store: Store) -> Optional[Requirement]:
    """Pick the open record with the lowest priority value.

    Ties go to the record that appears first in the store.
    """
    open_records = store.open()
    if not open_records:
        return None
    # min() returns the first of equal keys, which keeps store order on ties
    return min(open_records, key=lambda r: r.priority)
