"""
Reconciliation tests - create / update / skip decisions per event
"""
import uuid
from datetime import datetime, timedelta

import pytest
import pytz

from models import Alarm, ProcessingStatus
from stores import InMemoryAlarmStore
from sync.reconciler import AlarmReconciler, alarm_name_for
from tests.conftest import make_event

START = datetime(2025, 6, 2, 14, 0, tzinfo=pytz.UTC)


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def store():
    return InMemoryAlarmStore()


@pytest.fixture
def reconciler(store):
    return AlarmReconciler(store)


class TestMatching:
    """An alarm matches by embedded event id, or by exact title near the start time"""

    @pytest.mark.reconcile
    def test_name_containing_event_id_matches(self, reconciler, user_id):
        alarm = Alarm(user_id=user_id, name="Anything [evt-42]", time=START - timedelta(days=3))
        event = make_event('evt-42', 'Dentist', START)
        assert reconciler.matches(alarm, event)

    @pytest.mark.reconcile
    def test_title_match_within_59_minutes(self, reconciler, user_id):
        alarm = Alarm(user_id=user_id, name="Dentist", time=START - timedelta(minutes=59))
        assert reconciler.matches(alarm, make_event('evt-1', 'Dentist', START))

    @pytest.mark.reconcile
    def test_title_match_at_61_minutes_does_not_match(self, reconciler, user_id):
        alarm = Alarm(user_id=user_id, name="Dentist", time=START - timedelta(minutes=61))
        assert not reconciler.matches(alarm, make_event('evt-1', 'Dentist', START))

    @pytest.mark.reconcile
    def test_exactly_one_hour_does_not_match(self, reconciler, user_id):
        alarm = Alarm(user_id=user_id, name="Dentist", time=START + timedelta(minutes=60))
        assert not reconciler.matches(alarm, make_event('evt-1', 'Dentist', START))

    @pytest.mark.reconcile
    def test_different_title_does_not_match(self, reconciler, user_id):
        alarm = Alarm(user_id=user_id, name="Doctor", time=START)
        assert not reconciler.matches(alarm, make_event('evt-1', 'Dentist', START))

    @pytest.mark.reconcile
    def test_empty_event_id_never_matches_by_id(self, reconciler, user_id):
        alarm = Alarm(user_id=user_id, name="Gym", time=START - timedelta(days=2))
        assert not reconciler.matches(alarm, make_event('', 'Dentist', START))


class TestReconcile:
    """Batch reconciliation against the alarm store"""

    @pytest.mark.reconcile
    def test_creates_alarm_with_lead_time_and_linked_name(self, reconciler, store, user_id):
        event = make_event('evt-1', 'Dentist', START)

        result = reconciler.reconcile(user_id, [event])

        assert result.created == 1
        alarms = store.find_by_user(user_id)
        assert alarms[0].name == alarm_name_for(event) == "Dentist [evt-1]"
        assert alarms[0].time == START - timedelta(minutes=15)

    @pytest.mark.reconcile
    def test_existing_alarm_skipped_without_force(self, reconciler, store, user_id):
        store.create(Alarm(user_id=user_id, name="Dentist", time=START - timedelta(minutes=15)))

        result = reconciler.reconcile(user_id, [make_event('evt-1', 'Dentist', START)])

        assert result.skipped == 1
        assert result.created == 0
        assert 'alarm already exists' in result.warnings[0]
        assert result.processed_events[0].processing_status == ProcessingStatus.SKIPPED

    @pytest.mark.reconcile
    def test_existing_alarm_updated_with_force(self, reconciler, store, user_id):
        original = store.create(Alarm(user_id=user_id, name="Dentist", time=START - timedelta(minutes=30)))

        result = reconciler.reconcile(user_id, [make_event('evt-1', 'Dentist', START)], force_full_sync=True)

        assert result.updated == 1
        updated = store.find_by_user(user_id)[0]
        assert updated.id == original.id
        assert updated.name == "Dentist [evt-1]"
        assert updated.time == START - timedelta(minutes=15)

    @pytest.mark.reconcile
    def test_duplicate_events_in_one_batch_create_once(self, reconciler, store, user_id):
        event = make_event('evt-1', 'Dentist', START)

        result = reconciler.reconcile(user_id, [event, event])

        assert result.created == 1
        assert result.skipped == 1
        assert len(store.find_by_user(user_id)) == 1

    @pytest.mark.reconcile
    def test_other_users_alarms_are_ignored(self, reconciler, store, user_id):
        store.create(Alarm(user_id=uuid.uuid4(), name="Dentist [evt-1]", time=START))

        result = reconciler.reconcile(user_id, [make_event('evt-1', 'Dentist', START)])

        assert result.created == 1

    @pytest.mark.reconcile
    def test_missing_title_is_skipped_with_warning(self, reconciler, store, user_id):
        events = [
            make_event('evt-1', 'One', START),
            make_event('evt-2', '   ', START + timedelta(days=1)),
            make_event('evt-3', 'Three', START + timedelta(days=2)),
        ]

        result = reconciler.reconcile(user_id, events)

        assert result.processed == 3
        assert result.created == 2
        assert result.skipped == 1
        assert len(result.warnings) == 1
        assert 'evt-2' in result.warnings[0]
        assert result.processed_events[1].alarm_created is False

    @pytest.mark.reconcile
    def test_store_failure_on_one_event_keeps_batch_going(self, user_id):
        class FlakyStore(InMemoryAlarmStore):
            def create(self, alarm):
                if 'boom' in alarm.name:
                    raise ValueError("write rejected")
                return super().create(alarm)

        store = FlakyStore()
        reconciler = AlarmReconciler(store)
        events = [make_event('boom', 'Boom', START), make_event('evt-2', 'Fine', START)]

        result = reconciler.reconcile(user_id, events)

        assert result.created == 1
        assert result.skipped == 1
        assert 'write rejected' in result.warnings[0]

    @pytest.mark.reconcile
    def test_store_runtime_error_is_isolated_to_its_event(self, user_id):
        class FailingRowStore(InMemoryAlarmStore):
            def create(self, alarm):
                if 'evt-2' in alarm.name:
                    raise RuntimeError("db down for this row")
                return super().create(alarm)

        store = FailingRowStore()
        events = [
            make_event('evt-1', 'One', START),
            make_event('evt-2', 'Two', START + timedelta(days=1)),
            make_event('evt-3', 'Three', START + timedelta(days=2)),
        ]

        result = AlarmReconciler(store).reconcile(user_id, events)

        assert result.processed == 3
        assert result.created == 2
        assert result.skipped == 1
        assert 'db down for this row' in result.warnings[0]
        assert [e.processing_status for e in result.processed_events] == [
            ProcessingStatus.CREATED, ProcessingStatus.SKIPPED, ProcessingStatus.CREATED
        ]

    @pytest.mark.reconcile
    def test_non_datetime_start_is_skipped_with_warning(self, reconciler, store, user_id):
        events = [
            make_event('evt-1', 'One', START),
            make_event('evt-2', 'Two', 'not-a-date'),
            make_event('evt-3', 'Three', START + timedelta(days=2)),
        ]

        result = reconciler.reconcile(user_id, events)

        assert result.created == 2
        assert result.skipped == 1
        assert 'evt-2' in result.warnings[0]
        assert len(store.find_by_user(user_id)) == 2

    @pytest.mark.reconcile
    def test_failed_update_leaves_working_alarm_unchanged(self, user_id):
        class RejectFirstUpdateStore(InMemoryAlarmStore):
            updates = 0

            def update(self, alarm):
                self.updates += 1
                if self.updates == 1:
                    raise RuntimeError("update rejected")
                return super().update(alarm)

        store = RejectFirstUpdateStore()
        store.create(Alarm(user_id=user_id, name="Standup", time=START - timedelta(minutes=15)))
        events = [make_event('evt-1', 'Standup', START), make_event('evt-9', 'Standup', START)]

        result = AlarmReconciler(store).reconcile(user_id, events, force_full_sync=True)

        # The second event still sees the unsaved title-only name and updates it
        assert result.skipped == 1
        assert result.updated == 1
        assert result.created == 0
        assert [a.name for a in store.find_by_user(user_id)] == ["Standup [evt-9]"]

    @pytest.mark.reconcile
    def test_custom_lead_time(self, store, user_id):
        reconciler = AlarmReconciler(store, lead_minutes=30)
        reconciler.reconcile(user_id, [make_event('evt-1', 'Dentist', START)])
        assert store.find_by_user(user_id)[0].time == START - timedelta(minutes=30)
