"""
Unit tests for SDK layer.

Tests the usage tracker's counting, flush protocol and opt-in behavior.
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from usage_tracker.core.scheduler import SchedulerState
from usage_tracker.sdk import METRICS_KEY, FlushResult, UsageTracker
from usage_tracker.storage.models import NEVER, UsageEvent


class TrackerTestBase:
    """Temp store plus a tracker factory wired to fakes."""

    @pytest.fixture(autouse=True)
    def _setup(self, settings, clock, timer_factory, metrics_service, context):
        self.temp_dir = tempfile.mkdtemp()
        self.store_path = Path(self.temp_dir) / "usage.json"
        self.settings = settings
        self.clock = clock
        self.timer_factory = timer_factory
        self.metrics_service = metrics_service
        self.context = context
        yield
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_tracker(self, metrics_service="default", **kwargs) -> UsageTracker:
        if metrics_service == "default":
            metrics_service = self.metrics_service
        return UsageTracker(
            metrics_service=metrics_service,
            settings=self.settings,
            store_path=self.store_path,
            installation_id="install-1",
            unity_version="2019.4.1f1",
            clock=self.clock,
            timer_factory=self.timer_factory,
            context=self.context,
            **kwargs
        )

    def advance_days(self, days: int) -> None:
        self.clock.now = self.clock.now + timedelta(days=days)


class TestUsageTrackerInit(TrackerTestBase):
    """Test tracker construction."""

    def test_init_arms_initial_flush(self):
        """An enabled tracker schedules the first flush after three minutes."""
        tracker = self.make_tracker()

        assert tracker.scheduler.state == SchedulerState.ARMED
        assert self.timer_factory.last.interval == 180

    def test_init_disabled_does_not_arm(self):
        """Opted-out users get no timer at all."""
        self.settings.values[METRICS_KEY] = False

        tracker = self.make_tracker()

        assert tracker.scheduler.state == SchedulerState.DISABLED
        assert self.timer_factory.timers == []

    def test_init_missing_installation_id(self):
        """The installation id is required."""
        with pytest.raises(ValueError, match="installation_id is required"):
            UsageTracker(None, self.settings, self.store_path, "", "2019.4.1f1",
                         timer_factory=self.timer_factory)

    def test_optional_arguments_are_keyword_only(self):
        """Versions, delays and test hooks cannot be passed positionally."""
        with pytest.raises(TypeError):
            UsageTracker(None, self.settings, self.store_path, "install-1", "2019.4.1f1",
                         "1.2.0")

        assert self.timer_factory.timers == []

    def test_context_manager_disposes_timer(self):
        """Leaving the context cancels the pending flush."""
        with self.make_tracker() as tracker:
            pass

        assert self.timer_factory.last.cancelled
        assert tracker.scheduler.state == SchedulerState.DISABLED


class TestUsageTrackerIncrements(TrackerTestBase):
    """Test the increment operations."""

    def test_same_day_increments_accumulate(self):
        """Every call counts once in today's bucket."""
        tracker = self.make_tracker()

        tracker.increment_number_of_startups()
        tracker.increment_number_of_commits()
        tracker.increment_number_of_commits()

        store = tracker.repository.load()
        assert len(store.model.reports) == 1
        usage = store.model.reports[0]
        assert usage.measures.number_of_startups == 1
        assert usage.measures.number_of_commits == 2
        assert usage.dimensions.guid == "install-1"
        assert usage.dimensions.app_version == "1.2.0"
        assert usage.dimensions.date == datetime(2024, 3, 10, tzinfo=timezone.utc)

    def test_each_public_method_increments_its_counter(self):
        """The eleven public operations map to the eleven counters."""
        tracker = self.make_tracker()
        methods = {
            UsageEvent.STARTUP: tracker.increment_number_of_startups,
            UsageEvent.COMMIT: tracker.increment_number_of_commits,
            UsageEvent.FETCH: tracker.increment_number_of_fetches,
            UsageEvent.PUSH: tracker.increment_number_of_pushes,
            UsageEvent.PROJECT_INITIALIZED: tracker.increment_number_of_projects_initialized,
            UsageEvent.LOCAL_BRANCH_CREATED: tracker.increment_number_of_local_branch_creations,
            UsageEvent.LOCAL_BRANCH_DELETED: tracker.increment_number_of_local_branch_deletions,
            UsageEvent.LOCAL_BRANCH_CHECKED_OUT: tracker.increment_number_of_local_branch_checkouts,
            UsageEvent.REMOTE_BRANCH_CHECKED_OUT: tracker.increment_number_of_remote_branch_checkouts,
            UsageEvent.PULL: tracker.increment_number_of_pulls,
            UsageEvent.AUTHENTICATION: tracker.increment_number_of_authentications,
        }
        assert set(methods) == set(UsageEvent)

        for count, (event, method) in enumerate(methods.items(), start=1):
            assert method() is None
            measures = tracker.repository.load().model.reports[0].measures
            assert measures.get(event) == 1
            assert sum(measures.get(e) for e in UsageEvent) == count

    def test_new_day_creates_new_bucket(self):
        """Increments on different UTC days land in different buckets."""
        tracker = self.make_tracker()

        tracker.increment_number_of_pushes()
        self.advance_days(1)
        tracker.increment_number_of_pushes()
        tracker.increment_number_of_pushes()

        reports = tracker.repository.load().model.reports
        assert [r.measures.number_of_pushes for r in reports] == [1, 2]
        assert reports[1].dimensions.date - reports[0].dimensions.date == timedelta(days=1)

    def test_increment_recovers_from_corrupt_store(self):
        """A corrupt store is replaced and counting continues."""
        self.store_path.write_text("not json", encoding="utf-8")
        tracker = self.make_tracker()

        tracker.increment_number_of_fetches()

        reports = tracker.repository.load().model.reports
        assert len(reports) == 1
        assert reports[0].measures.number_of_fetches == 1


class TestUsageTrackerFlush(TrackerTestBase):
    """Test the flush protocol."""

    def _record_yesterday(self, tracker: UsageTracker) -> None:
        self.advance_days(-1)
        tracker.increment_number_of_startups()
        self.advance_days(1)

    def test_flush_sends_and_purges_previous_days(self):
        """Finished days are sent, removed and the last-sent time advanced."""
        tracker = self.make_tracker()
        self._record_yesterday(tracker)
        tracker.increment_number_of_commits()

        result = tracker.flush()

        assert result == FlushResult.SENT
        assert len(self.metrics_service.calls) == 1
        sent = self.metrics_service.calls[0]
        assert len(sent) == 1
        assert sent[0].measures.number_of_startups == 1

        store = tracker.repository.load()
        assert store.last_updated == self.clock.now
        assert len(store.model.reports) == 1
        assert store.model.reports[0].measures.number_of_commits == 1

    def test_flush_without_service_is_noop(self):
        """No transport means nothing is sent or marked sent."""
        tracker = self.make_tracker(metrics_service=None)
        self._record_yesterday(tracker)

        assert tracker.flush() == FlushResult.NO_SERVICE
        assert tracker.repository.load().last_updated == NEVER

    def test_flush_with_nothing_to_send(self):
        """Only today's bucket: no call and last-sent stays put."""
        tracker = self.make_tracker()
        tracker.increment_number_of_commits()

        assert tracker.flush() == FlushResult.NOTHING_TO_SEND
        assert self.metrics_service.calls == []
        assert tracker.repository.load().last_updated == NEVER

    def test_flush_when_disabled_sends_nothing(self):
        """Opted-out users never upload."""
        tracker = self.make_tracker()
        self._record_yesterday(tracker)
        self.settings.values[METRICS_KEY] = False

        assert tracker.flush() == FlushResult.DISABLED
        assert self.metrics_service.calls == []
        assert len(tracker.repository.load().model.reports) == 1

    def test_failed_send_keeps_data_for_retry(self):
        """A failing transport leaves everything in place until it works."""
        failing = self.metrics_service
        failing.error = ConnectionError("offline")
        tracker = self.make_tracker(metrics_service=failing)
        self._record_yesterday(tracker)

        assert tracker.flush() == FlushResult.FAILED
        store = tracker.repository.load()
        assert len(store.model.reports) == 1
        assert store.last_updated == NEVER

        failing.error = None
        assert tracker.flush() == FlushResult.SENT
        store = tracker.repository.load()
        assert store.model.reports == []
        assert store.last_updated == self.clock.now
        assert failing.calls[0] == failing.calls[1]

    def test_second_flush_same_day_is_skipped(self):
        """At most one upload per UTC day."""
        tracker = self.make_tracker()
        self._record_yesterday(tracker)
        assert tracker.flush() == FlushResult.SENT

        self.advance_days(-1)
        tracker.increment_number_of_pulls()
        self.advance_days(1)

        assert tracker.flush() == FlushResult.ALREADY_SENT
        assert len(self.metrics_service.calls) == 1

    def test_flush_next_day_sends_again(self):
        """The daily limit resets on the next UTC day."""
        tracker = self.make_tracker()
        self._record_yesterday(tracker)
        assert tracker.flush() == FlushResult.SENT

        tracker.increment_number_of_pulls()
        self.advance_days(1)

        assert tracker.flush() == FlushResult.SENT
        assert len(self.metrics_service.calls) == 2
        assert self.metrics_service.calls[1][0].measures.number_of_pulls == 1

    def test_increments_during_upload_are_kept(self):
        """Buckets written while the upload runs survive the purge."""
        tracker = self.make_tracker()
        self._record_yesterday(tracker)

        class IncrementingService:
            def post_usage(self, reports):
                tracker.increment_number_of_fetches()

        tracker.metrics_service = IncrementingService()

        assert tracker.flush() == FlushResult.SENT
        reports = tracker.repository.load().model.reports
        assert len(reports) == 1
        assert reports[0].measures.number_of_fetches == 1

    def test_timer_fire_runs_flush(self):
        """The scheduled timer performs a flush and then goes idle."""
        tracker = self.make_tracker()
        self._record_yesterday(tracker)

        self.timer_factory.last.fire()

        assert len(self.metrics_service.calls) == 1
        assert tracker.scheduler.state == SchedulerState.DISABLED

    def test_pending_reports(self):
        """Pending reports are the buckets before today."""
        tracker = self.make_tracker()
        self._record_yesterday(tracker)
        tracker.increment_number_of_commits()

        pending = tracker.pending_reports()

        assert len(pending) == 1
        assert pending[0].measures.number_of_startups == 1


class TestUsageTrackerEnabled(TrackerTestBase):
    """Test the opt-in property."""

    def test_enabled_defaults_to_true(self):
        """Reporting is on unless the user opted out."""
        assert self.make_tracker().enabled is True

    def test_disable_cancels_pending_flush(self):
        """Opting out stops the pending timer and persists the flag."""
        tracker = self.make_tracker()
        timer = self.timer_factory.last

        tracker.enabled = False

        assert timer.cancelled
        assert tracker.scheduler.state == SchedulerState.DISABLED
        assert self.settings.values[METRICS_KEY] is False

    def test_enable_arms_short_flush(self):
        """Opting in schedules a flush after a few seconds."""
        self.settings.values[METRICS_KEY] = False
        tracker = self.make_tracker()

        tracker.enabled = True

        assert tracker.scheduler.state == SchedulerState.ARMED
        assert self.timer_factory.last.interval == 5
        assert self.settings.values[METRICS_KEY] is True

    def test_setting_same_value_is_noop(self):
        """Assigning the current value neither arms nor cancels."""
        tracker = self.make_tracker()
        timer_count = len(self.timer_factory.timers)

        tracker.enabled = True

        assert len(self.timer_factory.timers) == timer_count
        assert not self.timer_factory.last.cancelled
        assert self.settings.set_calls == []

    def test_setting_false_twice_is_noop(self):
        """A second opt-out does not touch settings again."""
        tracker = self.make_tracker()
        tracker.enabled = False

        tracker.enabled = False

        assert self.settings.set_calls == [(METRICS_KEY, False)]

    def test_custom_opt_in_delay(self):
        """The opt-in delay is configurable."""
        self.settings.values[METRICS_KEY] = False
        tracker = self.make_tracker(opt_in_delay=30)

        tracker.enabled = True

        assert self.timer_factory.last.interval == 30
