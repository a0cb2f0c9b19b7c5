import datetime as dt

import pytest
from botocore.exceptions import ClientError
from openpyxl import load_workbook

from avalonrent.errors import StorageError
from avalonrent.history import (
    BATCH_SIZE,
    DynamoHistoryTable,
    SqliteHistoryTable,
    append_history,
    build_history_item,
    resolve_sqlite_path,
)
from avalonrent.models import ListingRecord

CAPTURED_AT = dt.datetime(2020, 1, 15, 8, 0, tzinfo=dt.timezone.utc)


def make_records(count):
    return [
        ListingRecord(
            unit_id=f"Apartment {index}",
            bedroom="1 bed",
            bath="1 bath",
            sqft=700,
            price=3000 + index,
            available_start=dt.date(2020, 2, 1),
            available_end=dt.date(2020, 2, 15),
            signature="",
            captured_at=CAPTURED_AT,
        )
        for index in range(count)
    ]


class RecordingTable:
    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.batches = []

    def write_batch(self, items):
        self.batches.append(list(items))
        if len(self.batches) == self.fail_on:
            raise RuntimeError("throttled")


def test_build_history_item_flattens_record():
    item = build_history_item(make_records(1)[0])

    assert item == {
        "AptNum": "Apartment 0",
        "CreatedAtMs": 1579075200000,
        "Bedroom": "1 bed",
        "Bath": "1 bath",
        "Sqft": 700,
        "Price": 3000,
        "AvailableStart": "2020-02-01",
        "AvailableEnd": "2020-02-15",
        "Signature": "",
    }


def test_append_history_batches_in_groups_of_25():
    table = RecordingTable()

    groups = append_history(make_records(53), table)

    assert BATCH_SIZE == 25
    assert groups == 3
    assert [len(batch) for batch in table.batches] == [25, 25, 3]


def test_append_history_aborts_after_failed_group():
    table = RecordingTable(fail_on=2)

    with pytest.raises(StorageError):
        append_history(make_records(53), table)

    assert [len(batch) for batch in table.batches] == [25, 25]


def test_append_history_with_no_records_writes_nothing():
    table = RecordingTable()
    assert append_history([], table) == 0
    assert table.batches == []


class FakeDynamoClient:
    def __init__(self, error=None, unprocessed=None):
        self.error = error
        self.unprocessed = unprocessed or {}
        self.calls = []

    def batch_write_item(self, RequestItems):
        self.calls.append(RequestItems)
        if self.error:
            raise self.error
        return {"UnprocessedItems": self.unprocessed}


def test_dynamo_history_table_sends_typed_items():
    client = FakeDynamoClient()
    table = DynamoHistoryTable(table_name="AvalonDailyStats", client=client)

    append_history(make_records(2), table)

    assert len(client.calls) == 1
    requests = client.calls[0]["AvalonDailyStats"]
    assert len(requests) == 2
    item = requests[0]["PutRequest"]["Item"]
    assert item["AptNum"] == {"S": "Apartment 0"}
    assert item["CreatedAtMs"] == {"N": "1579075200000"}
    assert item["Price"] == {"N": "3000"}
    assert item["AvailableEnd"] == {"S": "2020-02-15"}


def test_dynamo_history_table_wraps_client_errors():
    error = ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow"}},
        "BatchWriteItem",
    )
    table = DynamoHistoryTable(client=FakeDynamoClient(error=error))

    with pytest.raises(StorageError):
        append_history(make_records(30), table)
    assert len(table.client.calls) == 1


def test_dynamo_history_table_logs_unprocessed_items(caplog):
    client = FakeDynamoClient(unprocessed={"AvalonDailyStats": [{"PutRequest": {}}]})
    table = DynamoHistoryTable(client=client)

    with caplog.at_level("WARNING"):
        append_history(make_records(1), table)
    assert "left unprocessed" in caplog.text


def test_resolve_sqlite_path_handles_relative(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = resolve_sqlite_path("sqlite:///./stats.db")
    assert path == tmp_path / "stats.db"


def test_sqlite_history_table_appends_and_exports(tmp_path):
    table = SqliteHistoryTable(path=tmp_path / "stats.db")
    table.initialize()

    assert append_history(make_records(27), table) == 2
    rows = table.fetch_rows()
    assert len(rows) == 27
    assert rows[0][0] == "Apartment 0"

    export_path = table.export_to_xlsx(tmp_path / "exports" / "stats.xlsx")
    sheet = load_workbook(export_path).active
    assert [cell.value for cell in sheet[1]][:2] == ["AptNum", "CreatedAtMs"]
    assert sheet.max_row == 28
