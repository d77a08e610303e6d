"""Tests for the key-value voucher stores."""

import json
import threading
import time
from datetime import datetime, timezone

import pytest

from voucher_exchange.errors import StoreError
from voucher_exchange.models import LegacyVoucher, NewFormatVoucher
from voucher_exchange import storage
from voucher_exchange.storage import InMemoryVoucherStore, JsonFileVoucherStore, KeyValueVoucherStore

ISSUED = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_voucher(voucher_id="v1", issuer="a@x.com", recipient="b@x.com"):
    return NewFormatVoucher(id=voucher_id, issuer=issuer, recipient=recipient, issuedAt=ISSUED)


def test_get_missing_key_returns_none():
    assert InMemoryVoucherStore({}).get("nope") is None


def test_put_persists_flat_record_without_format_tag():
    data = {}
    InMemoryVoucherStore(data).put("v1", make_voucher())
    record = json.loads(data["v1"])
    assert record == {
        "id": "v1",
        "issuer": "a@x.com",
        "recipient": "b@x.com",
        "issuedAt": "2025-03-01T12:00:00Z",
        "status": "unused",
    }


def test_get_resolves_legacy_format_from_issuer():
    data = {"old": json.dumps({
        "id": "old", "issuer": "我", "recipient": "伴侶",
        "issuedAt": "2024-01-01T00:00:00.000Z",
    })}
    voucher = InMemoryVoucherStore(data).get("old")
    assert isinstance(voucher, LegacyVoucher)
    assert voucher.is_legacy
    assert voucher.status.value == "unused"


def test_get_raises_store_error_on_corrupt_record():
    store = InMemoryVoucherStore({"bad": "{not json"})
    with pytest.raises(StoreError):
        store.get("bad")


def test_list_all_skips_unreadable_records(caplog):
    data = {"bad": "{not json", "also-bad": json.dumps(["a"])}
    store = InMemoryVoucherStore(data)
    store.put("v1", make_voucher())
    records = store.list_all()
    assert [key for key, _ in records] == ["v1"]
    assert "Skipping unreadable voucher record" in caplog.text


def test_file_store_survives_reopen(tmp_path):
    path = tmp_path / "vouchers.json"
    JsonFileVoucherStore(path).put("v1", make_voucher())
    reopened = JsonFileVoucherStore(path)
    assert reopened.keys() == ["v1"]
    assert reopened.get("v1") == make_voucher()


def test_file_store_missing_file_is_empty(tmp_path):
    store = JsonFileVoucherStore(tmp_path / "absent.json")
    assert store.list_all() == []
    assert store.get("v1") is None


def test_file_store_rejects_non_object_document(tmp_path):
    path = tmp_path / "vouchers.json"
    path.write_text("[]", encoding="utf-8")
    with pytest.raises(StoreError):
        JsonFileVoucherStore(path).keys()


def test_list_all_skips_record_with_non_string_issuer():
    data = {"bad": json.dumps({
        "id": "bad", "issuer": 5, "recipient": "b@x.com",
        "issuedAt": "2025-01-01T00:00:00Z",
    })}
    assert InMemoryVoucherStore(data).list_all() == []


def test_extra_stored_fields_survive_write_back():
    data = {"old": json.dumps({
        "id": "old", "issuer": "我", "recipient": "伴侶",
        "issuedAt": "2024-01-01T00:00:00Z", "note": "生日",
    })}
    store = InMemoryVoucherStore(data)
    store.put("old", store.get("old"))
    assert json.loads(data["old"])["note"] == "生日"


def test_file_store_concurrent_puts_keep_every_record(tmp_path, monkeypatch):
    store = JsonFileVoucherStore(tmp_path / "vouchers.json")
    load = store._load

    def slow_load():
        data = load()
        time.sleep(0.05)
        return data

    monkeypatch.setattr(store, "_load", slow_load)
    threads = [
        threading.Thread(target=store.put, args=(f"v{i}", make_voucher(f"v{i}")))
        for i in range(4)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(store.keys()) == ["v0", "v1", "v2", "v3"]


def test_file_store_failed_write_leaves_no_temp_file(tmp_path, monkeypatch):
    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(storage.os, "replace", failing_replace)
    store = JsonFileVoucherStore(tmp_path / "vouchers.json")
    with pytest.raises(StoreError):
        store.put("v1", make_voucher())
    assert list(tmp_path.iterdir()) == []


def test_backend_missing_methods_cannot_be_constructed():
    class GetOnly(KeyValueVoucherStore):
        def _get_raw(self, key):
            return None

    with pytest.raises(TypeError):
        GetOnly()
