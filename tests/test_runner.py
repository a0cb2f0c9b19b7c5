import datetime as dt

import pytest
import requests

from avalonrent.errors import ConfigurationError, StorageError
from avalonrent.models import ListingRecord
from avalonrent.runner import (
    FETCH_ERROR_SUBJECT,
    HISTORY_ERROR_SUBJECT,
    AlertRunner,
    DailyStatsRunner,
)
from avalonrent.state import FileStateStore


def make_record(unit_id: str, price: int = 3500) -> ListingRecord:
    return ListingRecord(
        unit_id=unit_id,
        url=f"https://example.com/{unit_id}",
        bedroom="1 bed",
        bath="1 bath",
        sqft=700,
        price=price,
        available_start=dt.date(2020, 2, 1),
        available_end=dt.date(2020, 2, 15),
        captured_at=dt.datetime(2020, 1, 15, tzinfo=dt.timezone.utc),
    )


class RecordingNotifier:
    def __init__(self):
        self.messages = []

    def send(self, subject: str, html_body: str) -> None:
        self.messages.append((subject, html_body))


class RecordingStore:
    def __init__(self, state=None):
        self.state = dict(state or {})
        self.saves = []

    def load(self):
        return dict(self.state)

    def save(self, state):
        self.saves.append(dict(state))
        self.state = dict(state)


def build_alert_runner(store, notifier, records, **kwargs) -> AlertRunner:
    options = dict(
        store=store,
        notifier=notifier,
        max_price=3700,
        move_start="Feb 10, 2020",
        move_end="Feb 23, 2020",
        target_url="https://example.com/apartments",
        fetcher=lambda url: records,
    )
    options.update(kwargs)
    return AlertRunner(**options)


def test_alert_runner_persists_and_notifies_on_new_units():
    store = RecordingStore()
    notifier = RecordingNotifier()
    runner = build_alert_runner(store, notifier, [make_record("A"), make_record("B", price=4000)])

    result = runner.run()

    assert [record.unit_id for record in result.new] == ["A"]
    assert len(store.saves) == 1
    assert list(store.saves[0]) == [make_record("A").alert_key]
    assert len(notifier.messages) == 1
    subject, body = notifier.messages[0]
    assert subject == "Avalon Apartment Alert"
    assert "A, 1 bed, $3500" in body
    assert "B, 1 bed" not in body


def test_alert_runner_is_silent_when_nothing_changed():
    record = make_record("A")
    store = RecordingStore({record.alert_key: record})
    notifier = RecordingNotifier()

    result = build_alert_runner(store, notifier, [record]).run()

    assert result.existing == [record]
    assert store.saves == []
    assert notifier.messages == []


def test_alert_runner_reports_deprecated_units():
    gone = make_record("gone")
    store = RecordingStore({gone.alert_key: gone})
    notifier = RecordingNotifier()

    result = build_alert_runner(store, notifier, []).run()

    assert result.deprecated == [gone]
    assert store.saves == [{}]
    assert "gone, 1 bed" in notifier.messages[0][1]


def test_alert_runner_second_run_is_idempotent(tmp_path):
    store = FileStateStore(path=tmp_path / "alert-map.json")
    notifier = RecordingNotifier()
    records = [make_record("A"), make_record("B")]

    build_alert_runner(store, notifier, records).run()
    second = build_alert_runner(store, notifier, records).run()

    assert second.new == []
    assert second.deprecated == []
    assert len(notifier.messages) == 1


def test_alert_runner_dry_run_skips_side_effects():
    store = RecordingStore()
    notifier = RecordingNotifier()

    result = build_alert_runner(store, notifier, [make_record("A")]).run(dry_run=True)

    assert result.has_changes
    assert store.saves == []
    assert notifier.messages == []


def test_alert_runner_rejects_bad_move_date_before_fetching():
    fetched = []

    def fetcher(url):
        fetched.append(url)
        return []

    runner = build_alert_runner(
        RecordingStore(), RecordingNotifier(), [], move_end="sometime", fetcher=fetcher
    )

    with pytest.raises(ConfigurationError):
        runner.run()
    assert fetched == []


def test_alert_runner_propagates_state_write_failure():
    class FailingStore(RecordingStore):
        def save(self, state):
            raise StorageError("denied")

    notifier = RecordingNotifier()
    runner = build_alert_runner(FailingStore(), notifier, [make_record("A")])

    with pytest.raises(StorageError):
        runner.run()
    assert len(notifier.messages) == 1


class RecordingTable:
    def __init__(self, fail=False):
        self.fail = fail
        self.batches = []

    def write_batch(self, items):
        if self.fail:
            raise StorageError("throttled")
        self.batches.append(list(items))


def test_daily_stats_runner_appends_all_records():
    table = RecordingTable()
    records = [make_record(f"U{index}", price=9000) for index in range(30)]
    runner = DailyStatsRunner(table=table, fetcher=lambda url: records)

    assert runner.run() == 2
    assert [len(batch) for batch in table.batches] == [25, 5]


def test_daily_stats_runner_reports_fetch_failure():
    notifier = RecordingNotifier()

    def fetcher(url):
        raise requests.ConnectionError("offline")

    runner = DailyStatsRunner(table=RecordingTable(), notifier=notifier, fetcher=fetcher)

    with pytest.raises(requests.ConnectionError):
        runner.run()
    assert notifier.messages[0][0] == FETCH_ERROR_SUBJECT
    assert "offline" in notifier.messages[0][1]


def test_daily_stats_runner_reports_storage_failure():
    notifier = RecordingNotifier()
    runner = DailyStatsRunner(
        table=RecordingTable(fail=True),
        notifier=notifier,
        fetcher=lambda url: [make_record("A")],
    )

    with pytest.raises(StorageError):
        runner.run()
    assert notifier.messages[0][0] == HISTORY_ERROR_SUBJECT


def test_alert_runner_reports_again_after_failed_send(tmp_path):
    class FlakyNotifier(RecordingNotifier):
        def __init__(self):
            super().__init__()
            self.attempts = 0

        def send(self, subject, html_body):
            self.attempts += 1
            if self.attempts == 1:
                raise OSError("smtp down")
            super().send(subject, html_body)

    store = FileStateStore(path=tmp_path / "alert-map.json")
    notifier = FlakyNotifier()
    records = [make_record("A")]

    with pytest.raises(OSError):
        build_alert_runner(store, notifier, records).run()
    assert store.load() == {}

    second = build_alert_runner(store, notifier, records).run()

    assert [record.unit_id for record in second.new] == ["A"]
    assert len(notifier.messages) == 1
    assert "A, 1 bed, $3500" in notifier.messages[0][1]
    assert list(store.load()) == [make_record("A").alert_key]
