"""Voucher persistence behind a get/put/list key-value interface.

Records are stored as JSON text keyed by voucher id. There are no
transactions and no secondary index: listing every key is the only query.
"""

import contextlib
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from pydantic import ValidationError

from .errors import StoreError
from .models import Voucher, load_voucher

logger = logging.getLogger(__name__)

# id -> serialized voucher record
VOUCHERS_DB: Dict[str, str] = {}


class VoucherStore(Protocol):
    def get(self, voucher_id: str) -> Optional[Voucher]: ...
    def put(self, voucher_id: str, voucher: Voucher) -> None: ...
    def keys(self) -> List[str]: ...
    def list_all(self) -> List[Tuple[str, Voucher]]: ...


def encode_voucher(voucher: Voucher) -> str:
    return json.dumps(voucher.to_record(), ensure_ascii=False)


def decode_voucher(raw: str) -> Voucher:
    return load_voucher(json.loads(raw))


class KeyValueVoucherStore(ABC):
    """Shared decode/list logic over a raw text get/put/keys backend."""

    @abstractmethod
    def _get_raw(self, key: str) -> Optional[str]: ...

    @abstractmethod
    def _put_raw(self, key: str, value: str) -> None: ...

    @abstractmethod
    def keys(self) -> List[str]: ...

    def get(self, voucher_id: str) -> Optional[Voucher]:
        raw = self._get_raw(voucher_id)
        if raw is None:
            return None
        try:
            return decode_voucher(raw)
        except (ValueError, ValidationError) as e:
            raise StoreError(str(e), "decode", voucher_id) from e

    def put(self, voucher_id: str, voucher: Voucher) -> None:
        self._put_raw(voucher_id, encode_voucher(voucher))

    def list_all(self) -> List[Tuple[str, Voucher]]:
        records: List[Tuple[str, Voucher]] = []
        for key in self.keys():
            raw = self._get_raw(key)
            if raw is None:
                continue
            try:
                records.append((key, decode_voucher(raw)))
            except (ValueError, ValidationError):
                logger.error(
                    "Skipping unreadable voucher record",
                    extra={"voucher_id": key},
                    exc_info=True,
                )
        return records


class InMemoryVoucherStore(KeyValueVoucherStore):
    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data = data if data is not None else {}

    def _get_raw(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def _put_raw(self, key: str, value: str) -> None:
        self.data[key] = value

    def keys(self) -> List[str]:
        return list(self.data.keys())


class JsonFileVoucherStore(KeyValueVoucherStore):
    """All records in one JSON object on disk, rewritten on every put."""

    def __init__(self, path):
        self.path = Path(path)
        # put is load-modify-write of the whole file
        self._write_lock = threading.Lock()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreError(str(e), "read") from e
        if not isinstance(data, dict):
            raise StoreError("top-level JSON value is not an object", "read")
        return data

    def _get_raw(self, key: str) -> Optional[str]:
        record = self._load().get(key)
        if record is None:
            return None
        return json.dumps(record, ensure_ascii=False)

    def _put_raw(self, key: str, value: str) -> None:
        with self._write_lock:
            data = self._load()
            data[key] = json.loads(value)
            self._write(data, key)

    def _write(self, data: Dict[str, str], key: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        except OSError as e:
            raise StoreError(str(e), "write", key) from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except Exception as e:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
            if isinstance(e, OSError):
                raise StoreError(str(e), "write", key) from e
            raise

    def keys(self) -> List[str]:
        return list(self._load().keys())
