"""
Billing Save - Orchestrates a full save of a property's billing setup.

Stages (strictly sequential, each may fail):
1. validate            - flag exclusivity, default-category rules, line item amounts
2. provision_defaults  - best effort; failures are logged and the save continues
3. upsert_categories   - batch upsert on primary key
4. fetch_line_items    - fresh read of billing_details as the diff baseline
5. diff                - surgical plan (see services.billing_diff)
6. delete_removed      - batch delete by id, skipped when nothing to delete
7. upsert_line_items   - batch upsert on the natural key
8. commit              - notify listeners

There is no transaction across stages. A failure after stage 3 leaves the
categories saved and the line items partially reconciled; the error is
raised (retryable) so the caller can re-run the whole save.

SaveQueue guarantees one in-flight save per property and coalesces requests
that arrive mid-save. AutoSaveScheduler debounces edits into that same queue.
"""

import logging
import threading
import uuid
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional, Tuple

from services.billing_categories import (
    LEGACY_EXTRA_CHARGES_NAME,
    compute_missing_defaults,
    is_default_category,
    normalize_name,
    validate_category_flags,
)
from services.billing_diff import NATURAL_KEY_COLUMNS, diff_line_items, parse_timestamp, prepare_line_item
from services.billing_errors import BillingError, NotFoundError, PersistenceError, ValidationError
from services.row_store import RowStore

logger = logging.getLogger(__name__)

CATEGORY_COLUMNS = (
    'id', 'property_id', 'name', 'description', 'sort_order',
    'include_in_work_order', 'is_extra_charge', 'archived_at',
)

LEGACY_EXTRA_CHARGES_LINE_ITEM = {
    'bill_amount': 40,
    'sub_pay_amount': 20,
    'is_hourly': True,
}

LineItems = Dict[str, List[Dict[str, Any]]]


class BillingSaveOrchestrator:
    """Runs the staged save for one property at a time."""

    def __init__(self, store: RowStore, enable_legacy_extra_charges: bool = False,
                 strict_natural_keys: bool = False,
                 notify: Optional[Callable[[Dict[str, Any]], None]] = None):
        self.store = store
        self.enable_legacy_extra_charges = enable_legacy_extra_charges
        self.strict_natural_keys = strict_natural_keys
        self.notify = notify

    # ------------------------------------------------------------------
    # Reads shared with the load path
    # ------------------------------------------------------------------

    def load_global_defaults(self) -> List[Dict]:
        """Default master categories. Returns [] (and logs) if the read fails."""
        try:
            return self.store.select('job_categories', {'is_default': True, 'is_hidden': False},
                                     order_by=['sort_order'])
        except PersistenceError as e:
            logger.warning(f"Could not load default job categories: {e.message}")
            return []

    def first_unit_size_id(self) -> Optional[str]:
        sizes = self.store.select('unit_sizes', order_by=['unit_size_label'])
        return sizes[0]['id'] if sizes else None

    def provision_defaults(self, property_id: str, categories: List[Dict],
                           global_defaults: Optional[List[Dict]] = None) -> List[Dict]:
        """
        Persist missing default categories for a property.
        Best effort: returns the created rows, or [] if anything fails.
        """
        if global_defaults is None:
            global_defaults = self.load_global_defaults()
        try:
            persisted = self.store.select('billing_categories', {'property_id': property_id})
            staged = compute_missing_defaults(
                property_id, global_defaults, list(categories) + persisted,
                include_legacy_extra_charges=self.enable_legacy_extra_charges
            )
            if not staged:
                return []
            created = self.store.insert('billing_categories', staged)
        except PersistenceError as e:
            logger.warning(f"Default category provisioning failed for property {property_id}: {e.message}")
            return []
        logger.info(f"Provisioned {len(created)} default categories for property {property_id}")
        return created

    def provision_legacy_extra_charge_item(self, property_id: str, categories: List[Dict],
                                           existing_items: List[Dict]) -> Optional[Dict]:
        """Give the legacy Extra Charges category its default hourly rate when it has none."""
        if not self.enable_legacy_extra_charges:
            return None
        extra = next((c for c in categories
                      if normalize_name(c.get('name')) == normalize_name(LEGACY_EXTRA_CHARGES_NAME)), None)
        if extra is None or any(i.get('category_id') == extra['id'] for i in existing_items):
            return None
        try:
            unit_size_id = self.first_unit_size_id()
            if not unit_size_id:
                return None
            row = prepare_line_item(dict(LEGACY_EXTRA_CHARGES_LINE_ITEM, property_id=property_id,
                                         category_id=extra['id'], unit_size_id=unit_size_id))
            self.store.upsert('billing_details', [row], NATURAL_KEY_COLUMNS)
        except PersistenceError as e:
            logger.warning(f"Could not create default Extra Charges rate for property {property_id}: {e.message}")
            return None
        return row

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _require_property(self, property_id: str):
        if not property_id:
            raise ValidationError("property_id is required", field='property_id')
        if not self.store.select('properties', {'id': property_id}):
            raise NotFoundError(f"Property {property_id} not found")

    def _validate_categories(self, property_id: str, categories: List[Dict],
                             default_names: List[str]) -> List[Dict]:
        prepared = []
        for category in categories:
            row = {k: category.get(k) for k in CATEGORY_COLUMNS if k in category}
            if not (row.get('name') or '').strip():
                raise ValidationError("Category name is required", field='name')
            if row.get('property_id') and row['property_id'] != property_id:
                raise ValidationError(
                    f"Category {row.get('id')} belongs to another property", field='property_id'
                )
            row['property_id'] = property_id
            row['id'] = row.get('id') or str(uuid.uuid4())
            row['is_extra_charge'] = bool(row.get('is_extra_charge'))
            row['include_in_work_order'] = bool(row.get('include_in_work_order'))
            if 'archived_at' in row:
                row['archived_at'] = parse_timestamp(row['archived_at'], 'archived_at')

            if is_default_category(row['name'], default_names):
                if row['is_extra_charge']:
                    raise ValidationError(
                        f"Default category '{row['name']}' cannot be marked as an Extra Charge",
                        field='is_extra_charge'
                    )
                row['include_in_work_order'] = True

            if not row.get('archived_at'):
                error = validate_category_flags(row['is_extra_charge'], row['include_in_work_order'])
                if error:
                    raise ValidationError(f"{row['name']}: {error}", field='is_extra_charge')
            prepared.append(row)
        self._check_ownership(property_id, prepared)
        return prepared

    def _check_ownership(self, property_id: str, prepared: List[Dict]):
        """Category upserts key on id alone; reject ids already stored under another property."""
        ids = [row['id'] for row in prepared]
        if not ids:
            return
        for existing in self.store.select('billing_categories', {'id': ids}):
            if existing['property_id'] != property_id:
                raise ValidationError(
                    f"Category {existing['id']} belongs to another property", field='id'
                )

    def _desired_line_items(self, property_id: str, categories: List[Dict],
                            line_items: LineItems) -> List[Dict]:
        by_id = {c['id']: c for c in categories}
        include_sort_order = self.store.supports_line_item_sort_order
        legacy_unit_size_id = None
        desired = []

        for category_id, items in (line_items or {}).items():
            category = by_id.get(category_id)
            if category is None:
                logger.warning(
                    f"Skipping line items for category {category_id} not associated with property {property_id}"
                )
                continue

            is_legacy_extra = (
                self.enable_legacy_extra_charges
                and normalize_name(category['name']) == normalize_name(LEGACY_EXTRA_CHARGES_NAME)
            )
            if is_legacy_extra and legacy_unit_size_id is None:
                legacy_unit_size_id = self.first_unit_size_id()

            for position, item in enumerate(items, start=1):
                row = {
                    'property_id': property_id,
                    'category_id': category_id,
                    'unit_size_id': item.get('unit_size_id'),
                    'bill_amount': item.get('bill_amount'),
                    'sub_pay_amount': item.get('sub_pay_amount'),
                    'is_hourly': bool(item.get('is_hourly')),
                }
                if is_legacy_extra:
                    row['unit_size_id'] = legacy_unit_size_id
                    row['is_hourly'] = True
                if include_sort_order:
                    row['sort_order'] = position
                desired.append(row)
        return desired

    def save(self, property_id: str, categories: List[Dict], line_items: LineItems) -> Dict[str, Any]:
        """
        Run a full save. Returns a summary dict on success; raises a
        BillingError subclass (with .stage set) on failure.
        """
        stage = 'validate'
        try:
            self._require_property(property_id)
            global_defaults = self.load_global_defaults()
            default_names = [d['name'] for d in global_defaults]
            prepared = self._validate_categories(property_id, categories, default_names)
            desired = self._desired_line_items(property_id, prepared, line_items)
            # Surface bad amounts and duplicate keys before anything is written
            diff_line_items([], desired, strict=self.strict_natural_keys)

            stage = 'provision_defaults'
            provisioned = self.provision_defaults(property_id, prepared, global_defaults)

            stage = 'upsert_categories'
            self.store.upsert('billing_categories', prepared, ['id'])
            logger.info(f"Saved {len(prepared)} billing categories for property {property_id}")

            stage = 'fetch_line_items'
            # Only categories in this draft are reconciled; rows of other categories are left alone
            category_ids = [c['id'] for c in prepared]
            existing = self.store.select('billing_details', {'property_id': property_id,
                                                             'category_id': category_ids})

            stage = 'diff'
            plan = diff_line_items(existing, desired, strict=self.strict_natural_keys)

            stage = 'delete_removed'
            if plan['to_delete_ids']:
                self.store.delete('billing_details', {'id': plan['to_delete_ids']})

            stage = 'upsert_line_items'
            self.store.upsert('billing_details', plan['to_upsert'], NATURAL_KEY_COLUMNS)

            stage = 'commit'
            if provisioned:
                self.provision_legacy_extra_charge_item(
                    property_id, prepared + provisioned, plan['to_upsert']
                )
        except BillingError as e:
            e.stage = e.stage or stage
            logger.error(f"Billing save for property {property_id} failed at {e.stage}: {e.message}")
            self._notify(property_id, False, e.message, stage=e.stage)
            raise

        result = {
            'success': True,
            'message': 'Billing details saved successfully',
            'property_id': property_id,
            'categories_saved': len(prepared),
            'categories_provisioned': len(provisioned),
            'line_items_inserted': plan['inserts'],
            'line_items_updated': plan['updates'],
            'line_items_deleted': len(plan['to_delete_ids']),
            'line_items_dropped': plan['dropped'],
        }
        logger.info(
            f"Billing save for property {property_id} complete: "
            f"+{plan['inserts']} ~{plan['updates']} -{len(plan['to_delete_ids'])}"
        )
        self._notify(property_id, True, result['message'])
        return result

    def _notify(self, property_id: str, success: bool, message: str, stage: Optional[str] = None):
        if not self.notify:
            return
        event = {'property_id': property_id, 'success': success, 'message': message}
        if stage:
            event['stage'] = stage
        try:
            self.notify(event)
        except Exception as e:
            logger.warning(f"Save notification listener failed: {e}")


# ============================================================================
# SAVE QUEUE
# ============================================================================

class SaveQueue:
    """
    One in-flight save per property.

    A request that arrives while a save is running is parked; when the
    running save finishes, all parked requests collapse into a single
    follow-up save using the most recent draft. Every caller gets a Future
    for the save that covered its request.
    """

    def __init__(self, orchestrator: BillingSaveOrchestrator):
        self.orchestrator = orchestrator
        self._lock = threading.Lock()
        self._states: Dict[str, Dict[str, Any]] = {}

    def submit(self, property_id: str, categories: List[Dict], line_items: LineItems) -> Future:
        """Run (or coalesce) a save. Runs in the calling thread when the property is idle."""
        future: Future = Future()
        with self._lock:
            state = self._states.get(property_id)
            if state is not None:
                state['pending'] = (categories, line_items)
                state['waiters'].append(future)
                logger.info(f"Save for property {property_id} in flight; request coalesced")
                return future
            self._states[property_id] = {'pending': None, 'waiters': [], 'idle': threading.Event()}

        self._drain(property_id, (categories, line_items), [future])
        return future

    def _drain(self, property_id: str, draft: Tuple[List[Dict], LineItems], waiters: List[Future]):
        while True:
            try:
                result = self.orchestrator.save(property_id, *draft)
            except Exception as e:
                for waiter in waiters:
                    waiter.set_exception(e)
            else:
                for waiter in waiters:
                    waiter.set_result(result)

            with self._lock:
                state = self._states[property_id]
                if state['pending'] is None:
                    # Idle properties keep no state; wait_idle callers hold the Event
                    del self._states[property_id]
                    state['idle'].set()
                    return
                draft, waiters = state['pending'], state['waiters']
                state['pending'], state['waiters'] = None, []

    def is_saving(self, property_id: str) -> bool:
        with self._lock:
            return property_id in self._states

    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._states)

    def wait_idle(self, property_id: str, timeout: Optional[float] = None) -> bool:
        """Block until no save is running for the property. False on timeout."""
        with self._lock:
            state = self._states.get(property_id)
        if state is None:
            return True
        return state['idle'].wait(timeout)


# ============================================================================
# AUTO-SAVE
# ============================================================================

class AutoSaveScheduler:
    """
    Debounced auto-save. Each schedule() call restarts the property's timer;
    when it fires, the latest draft is pulled from draft_provider and sent
    through the SaveQueue, the same path an explicit save takes.
    """

    def __init__(self, save_queue: SaveQueue, delay_seconds: float = 2.0):
        self.save_queue = save_queue
        self.delay_seconds = delay_seconds
        self._lock = threading.Lock()
        self._timers: Dict[str, threading.Timer] = {}
        self._providers: Dict[str, Tuple[Callable, Optional[Callable]]] = {}

    def schedule(self, property_id: str,
                 draft_provider: Callable[[], Tuple[List[Dict], LineItems]],
                 on_done: Optional[Callable[[Future], None]] = None):
        with self._lock:
            existing = self._timers.pop(property_id, None)
            if existing:
                existing.cancel()
            timer = threading.Timer(self.delay_seconds, lambda: self._fire(property_id, timer))
            timer.daemon = True
            self._timers[property_id] = timer
            self._providers[property_id] = (draft_provider, on_done)
            timer.start()
        logger.debug(f"Auto-save for property {property_id} scheduled in {self.delay_seconds}s")

    def cancel(self, property_id: str) -> bool:
        with self._lock:
            timer = self._timers.pop(property_id, None)
            self._providers.pop(property_id, None)
        if timer:
            timer.cancel()
            return True
        return False

    def is_pending(self, property_id: str) -> bool:
        with self._lock:
            return property_id in self._timers

    def pending_count(self) -> int:
        with self._lock:
            return len(self._timers)

    def flush_now(self, property_id: str) -> Optional[Future]:
        """Skip the remaining delay and save immediately, if a save is pending."""
        with self._lock:
            timer = self._timers.pop(property_id, None)
            entry = self._providers.pop(property_id, None)
        if timer is None or entry is None:
            return None
        timer.cancel()
        return self._submit(property_id, *entry)

    def _fire(self, property_id: str, timer: threading.Timer):
        with self._lock:
            # A newer schedule() replaced this timer while it waited for the lock
            if self._timers.get(property_id) is not timer:
                return
            del self._timers[property_id]
            entry = self._providers.pop(property_id, None)
        if entry is None:
            return
        self._submit(property_id, *entry)

    def _submit(self, property_id: str, provider: Callable,
                on_done: Optional[Callable[[Future], None]] = None) -> Future:
        categories, line_items = provider()
        future = self.save_queue.submit(property_id, categories, line_items)
        future.add_done_callback(lambda f: self._log_outcome(property_id, f))
        if on_done is not None:
            future.add_done_callback(on_done)
        return future

    @staticmethod
    def _log_outcome(property_id: str, future: Future):
        error = future.exception()
        if error is not None:
            logger.warning(f"Auto-save for property {property_id} failed: {error}")
        else:
            logger.info(f"Auto-save for property {property_id} complete")
