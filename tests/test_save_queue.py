"""
Tests for save coalescing and debounced auto-save
"""
import threading
import pytest
from unittest.mock import Mock

from services.billing_save import SaveQueue, AutoSaveScheduler
from services.billing_errors import PersistenceError


class BlockingOrchestrator:
    """Holds the first save open until released, so later requests arrive mid-save"""

    def __init__(self):
        self.calls = []
        self.started = threading.Event()
        self.release = threading.Event()

    def save(self, property_id, categories, line_items):
        self.calls.append((property_id, categories, line_items))
        if len(self.calls) == 1:
            self.started.set()
            self.release.wait(5)
        return {'success': True, 'message': 'Billing details saved successfully', 'draft': categories}


def _saving_orchestrator():
    orchestrator = Mock()
    orchestrator.save.return_value = {'success': True, 'message': 'Billing details saved successfully'}
    return orchestrator


@pytest.mark.unit
class TestSaveQueue:
    """Tests for one-save-per-property coalescing"""

    def test_idle_submit_runs_immediately(self):
        """Test a save on an idle property completes before submit returns"""
        orchestrator = _saving_orchestrator()
        future = SaveQueue(orchestrator).submit('p1', ['draft'], {})

        assert future.done()
        assert future.result()['success'] is True
        orchestrator.save.assert_called_once_with('p1', ['draft'], {})

    def test_requests_during_save_coalesce_into_one(self):
        """Test two requests made mid-save produce one follow-up save with the newest draft"""
        orchestrator = BlockingOrchestrator()
        queue = SaveQueue(orchestrator)
        first = {}
        worker = threading.Thread(target=lambda: first.update(f=queue.submit('p1', ['v1'], {})))
        worker.start()
        assert orchestrator.started.wait(5)

        second = queue.submit('p1', ['v2'], {})
        third = queue.submit('p1', ['v3'], {})
        assert queue.is_saving('p1')
        assert not second.done()

        orchestrator.release.set()
        worker.join(5)

        assert len(orchestrator.calls) == 2
        assert orchestrator.calls[1][1] == ['v3']
        assert first['f'].result()['draft'] == ['v1']
        assert second.result()['draft'] == ['v3']
        assert third.result()['draft'] == ['v3']
        assert not queue.is_saving('p1')

    def test_properties_do_not_block_each_other(self):
        """Test a running save for one property leaves others free"""
        orchestrator = BlockingOrchestrator()
        queue = SaveQueue(orchestrator)
        worker = threading.Thread(target=queue.submit, args=('p1', ['a'], {}))
        worker.start()
        assert orchestrator.started.wait(5)

        other = queue.submit('p2', ['b'], {})

        assert other.done()
        assert queue.in_flight_count() == 1
        orchestrator.release.set()
        worker.join(5)
        assert queue.in_flight_count() == 0

    def test_failure_reaches_the_future(self):
        """Test an orchestrator error is set on the caller's future"""
        orchestrator = Mock()
        orchestrator.save.side_effect = PersistenceError('connection reset', stage='upsert_line_items')
        queue = SaveQueue(orchestrator)

        future = queue.submit('p1', [], {})

        assert isinstance(future.exception(), PersistenceError)
        assert not queue.is_saving('p1')
        assert queue.wait_idle('p1', timeout=0.1)

    def test_wait_idle_times_out_while_saving(self):
        """Test wait_idle returns False when the save outlasts the timeout"""
        orchestrator = BlockingOrchestrator()
        queue = SaveQueue(orchestrator)
        worker = threading.Thread(target=queue.submit, args=('p1', [], {}))
        worker.start()
        assert orchestrator.started.wait(5)

        assert queue.wait_idle('p1', timeout=0.05) is False

        orchestrator.release.set()
        worker.join(5)
        assert queue.wait_idle('p1', timeout=1) is True

    def test_idle_properties_leave_no_state(self):
        """Test finished saves and read-only queries keep nothing per property"""
        queue = SaveQueue(_saving_orchestrator())
        for property_id in ('p1', 'p2', 'p3'):
            queue.submit(property_id, [], {})

        assert queue.is_saving('p4') is False
        assert queue.wait_idle('p5', timeout=0) is True
        assert queue._states == {}

    def test_state_released_after_coalesced_follow_up(self):
        """Test the entry is dropped once the follow-up save also finishes"""
        orchestrator = BlockingOrchestrator()
        queue = SaveQueue(orchestrator)
        worker = threading.Thread(target=queue.submit, args=('p1', ['v1'], {}))
        worker.start()
        assert orchestrator.started.wait(5)
        follow_up = queue.submit('p1', ['v2'], {})

        orchestrator.release.set()
        worker.join(5)

        assert follow_up.result(5)['draft'] == ['v2']
        assert queue._states == {}


@pytest.mark.unit
class TestAutoSave:
    """Tests for the debounced auto-save"""

    def test_rapid_edits_collapse_into_one_save(self):
        """Test scheduling repeatedly inside the delay saves once with the last draft"""
        orchestrator = _saving_orchestrator()
        scheduler = AutoSaveScheduler(SaveQueue(orchestrator), delay_seconds=0.2)
        done = threading.Event()

        for version in range(1, 4):
            scheduler.schedule('p1', lambda v=version: ([f'v{v}'], {}), on_done=lambda f: done.set())

        assert done.wait(5)
        orchestrator.save.assert_called_once_with('p1', ['v3'], {})
        assert not scheduler.is_pending('p1')

    def test_cancel(self):
        """Test a cancelled auto-save never runs"""
        orchestrator = _saving_orchestrator()
        scheduler = AutoSaveScheduler(SaveQueue(orchestrator), delay_seconds=10)
        scheduler.schedule('p1', lambda: ([], {}))

        assert scheduler.is_pending('p1')
        assert scheduler.pending_count() == 1
        assert scheduler.cancel('p1') is True
        assert scheduler.cancel('p1') is False
        assert scheduler.pending_count() == 0
        orchestrator.save.assert_not_called()

    def test_flush_now_skips_the_delay(self):
        """Test flush_now saves the pending draft straight away"""
        orchestrator = _saving_orchestrator()
        scheduler = AutoSaveScheduler(SaveQueue(orchestrator), delay_seconds=10)
        on_done = Mock()
        scheduler.schedule('p1', lambda: (['latest'], {}), on_done=on_done)

        future = scheduler.flush_now('p1')

        assert future.result()['success'] is True
        orchestrator.save.assert_called_once_with('p1', ['latest'], {})
        on_done.assert_called_once_with(future)
        assert not scheduler.is_pending('p1')

    def test_stale_timer_does_not_cut_the_new_delay_short(self):
        """Test a timer replaced by a newer schedule() leaves the new one pending"""
        orchestrator = _saving_orchestrator()
        scheduler = AutoSaveScheduler(SaveQueue(orchestrator), delay_seconds=10)
        scheduler.schedule('p1', lambda: (['v1'], {}))
        stale = scheduler._timers['p1']
        scheduler.schedule('p1', lambda: (['v2'], {}))

        # The old timer fired just before being replaced and only now got the lock
        scheduler._fire('p1', stale)

        orchestrator.save.assert_not_called()
        assert scheduler.is_pending('p1')
        scheduler.flush_now('p1')
        orchestrator.save.assert_called_once_with('p1', ['v2'], {})

    def test_flush_now_without_pending_save(self):
        """Test flush_now is a no-op when nothing is scheduled"""
        scheduler = AutoSaveScheduler(SaveQueue(_saving_orchestrator()), delay_seconds=10)
        assert scheduler.flush_now('p1') is None

    def test_failed_auto_save_reported_to_callback(self):
        """Test on_done sees the failure of an auto-save"""
        orchestrator = Mock()
        orchestrator.save.side_effect = PersistenceError('timeout')
        scheduler = AutoSaveScheduler(SaveQueue(orchestrator), delay_seconds=10)
        outcomes = []
        scheduler.schedule('p1', lambda: ([], {}), on_done=lambda f: outcomes.append(f.exception()))

        scheduler.flush_now('p1')

        assert isinstance(outcomes[0], PersistenceError)
