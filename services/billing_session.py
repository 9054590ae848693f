"""
Billing Edit Session - In-memory editing model for one property's billing setup.

The UI layer mutates the session; every mutation marks it dirty and, when an
auto-save scheduler is attached, restarts the debounce timer. Explicit and
automatic saves both go through the same SaveQueue.
"""

import copy
import logging
import threading
import uuid
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Optional

from services.billing_categories import (
    reorder_categories,
    reorder_line_items,
    sort_categories,
    validate_category_flags,
)
from services.billing_errors import NotFoundError, ValidationError
from services.billing_save import AutoSaveScheduler, SaveQueue

logger = logging.getLogger(__name__)


class BillingEditSession:
    """Draft categories and line items for one property, plus the unsaved-changes flag."""

    def __init__(self, property_id: str, categories: List[Dict],
                 line_items: Dict[str, List[Dict]], save_queue: SaveQueue,
                 autosave: Optional[AutoSaveScheduler] = None):
        self.property_id = property_id
        self.categories = sort_categories([dict(c) for c in categories])
        self.line_items = {cid: [dict(i) for i in items] for cid, items in (line_items or {}).items()}
        for category in self.categories:
            self.line_items.setdefault(category['id'], [])
        self.save_queue = save_queue
        self.autosave = autosave
        self.has_unsaved_changes = False
        self.last_message: Optional[str] = None
        self._lock = threading.RLock()
        self._version = 0
        self._inflight: List[Future] = []
        self._autosave_version = 0

    @classmethod
    def from_loaded(cls, loaded: Dict[str, Any], save_queue: SaveQueue,
                    autosave: Optional[AutoSaveScheduler] = None) -> 'BillingEditSession':
        """Build a session from PropertyBillingRepository.load() output."""
        return cls(loaded['property']['id'], loaded['categories'], loaded['line_items'],
                   save_queue, autosave)

    # ------------------------------------------------------------------
    # Draft access
    # ------------------------------------------------------------------

    def snapshot(self):
        """Deep copy of the current draft, as (categories, line_items)."""
        with self._lock:
            return copy.deepcopy(self.categories), copy.deepcopy(self.line_items)

    def _category(self, category_id: str) -> Dict:
        category = next((c for c in self.categories if c['id'] == category_id), None)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found in this session", field='category_id')
        return category

    def _items(self, category_id: str) -> List[Dict]:
        self._category(category_id)
        return self.line_items.setdefault(category_id, [])

    def _item(self, category_id: str, item_id: str) -> Dict:
        item = next((i for i in self._items(category_id) if i.get('id') == item_id), None)
        if item is None:
            raise NotFoundError(f"Line item {item_id} not found", field='id')
        return item

    def _touched(self):
        self.has_unsaved_changes = True
        self._version += 1
        if self.autosave is not None:
            self.autosave.schedule(self.property_id, self._autosave_draft, on_done=self._autosave_done)

    def _autosave_draft(self):
        with self._lock:
            self._autosave_version = self._version
            return self.snapshot()

    def _autosave_done(self, future: Future):
        self._on_saved(future, self._autosave_version)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_line_item(self, category_id: str, unit_size_id: str = None, bill_amount=None,
                      sub_pay_amount=None, is_hourly: bool = False) -> Dict:
        """Add a line item to a category. Amounts may be left blank until filled in."""
        with self._lock:
            item = {
                'id': str(uuid.uuid4()),
                'category_id': category_id,
                'unit_size_id': unit_size_id,
                'bill_amount': bill_amount,
                'sub_pay_amount': sub_pay_amount,
                'is_hourly': bool(is_hourly),
            }
            self._items(category_id).append(item)
            self._touched()
            return item

    def update_line_item(self, category_id: str, item_id: str, **changes) -> Dict:
        allowed = {'unit_size_id', 'bill_amount', 'sub_pay_amount', 'is_hourly'}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Unknown line item fields: {', '.join(sorted(unknown))}")
        with self._lock:
            item = self._item(category_id, item_id)
            item.update(changes)
            self._touched()
            return item

    def remove_line_item(self, category_id: str, item_id: str):
        with self._lock:
            items = self._items(category_id)
            item = self._item(category_id, item_id)
            items.remove(item)
            self._touched()

    def reorder_categories(self, moved_id: str, target_id: str) -> List[Dict]:
        with self._lock:
            self.categories = reorder_categories(self.categories, moved_id, target_id)
            self._touched()
            return self.categories

    def reorder_line_items(self, category_id: str, moved_id: str, target_id: str) -> List[Dict]:
        with self._lock:
            reordered = reorder_line_items(self._items(category_id), moved_id, target_id)
            self.line_items[category_id] = reordered
            self._touched()
            return reordered

    def set_category_flags(self, category_id: str, is_extra_charge: bool = None,
                           include_in_work_order: bool = None) -> Dict:
        """Update the two section flags; rejects the combination that is not allowed."""
        with self._lock:
            category = self._category(category_id)
            extra = category.get('is_extra_charge') if is_extra_charge is None else is_extra_charge
            work_order = (category.get('include_in_work_order')
                          if include_in_work_order is None else include_in_work_order)
            error = validate_category_flags(bool(extra), bool(work_order))
            if error:
                raise ValidationError(error, field='is_extra_charge')
            category['is_extra_charge'] = bool(extra)
            category['include_in_work_order'] = bool(work_order)
            self._touched()
            return category

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def save(self) -> Future:
        """
        Save the current draft through the queue.
        The unsaved flag clears only if no edits happened while the save ran.
        """
        with self._lock:
            if self.autosave is not None:
                self.autosave.cancel(self.property_id)
            version = self._version
            categories, line_items = self.snapshot()

        future = self.save_queue.submit(self.property_id, categories, line_items)
        with self._lock:
            self._inflight.append(future)
        future.add_done_callback(lambda f: self._on_saved(f, version))
        return future

    def _on_saved(self, future: Future, version: int):
        with self._lock:
            if future in self._inflight:
                self._inflight.remove(future)
            error = future.exception()
            if error is not None:
                self.last_message = str(error)
                return
            self.last_message = future.result().get('message')
            if self._version == version:
                self.has_unsaved_changes = False

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Before navigating away: push any pending auto-save and wait for
        in-flight saves. Returns False if the timeout ran out first.
        Save failures are left in last_message, not raised.
        """
        waiting = []
        if self.autosave is not None:
            pending = self.autosave.flush_now(self.property_id)
            if pending is not None:
                waiting.append(pending)

        with self._lock:
            waiting.extend(self._inflight)
        for future in waiting:
            try:
                future.exception(timeout=timeout)
            except FutureTimeoutError:
                logger.warning(f"Timed out waiting for billing save of property {self.property_id}")
                return False
        return self.save_queue.wait_idle(self.property_id, timeout)
