# ==============================================
# BulkBuffer
# ==============================================
#
# PURPOSE:
#   In-memory staging area for the bulk API. Every accepted
#   record becomes two newline-terminated JSON lines:
#
#     {"index":{"_index":"api-2023.06.15","_type":"api","_id":"..."}}
#     {"id":"...","@timestamp":"...", ...}
#
# CLASS: BulkBuffer
# -----------------
#   - append(index_name, doc_id, record) -> int
#       Serialize the line pair, return the new record count.
#   - drain() -> str
#       Return the whole payload and reset to empty in one step.
#   - count / size_bytes / is_empty
#
# ==============================================

import json
from typing import Any, Optional


DOCUMENT_TYPE = "api"


def to_json_line(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False, default=str) + "\n"


def index_action(index_name: str, doc_id: Optional[str]) -> dict:
    meta = {"_index": index_name, "_type": DOCUMENT_TYPE}
    if doc_id is not None:
        meta["_id"] = doc_id
    return {"index": meta}


class BulkBuffer:
    def __init__(self):
        self._lines: list[str] = []
        self._count = 0
        self._size_bytes = 0

    @property
    def count(self) -> int:
        return self._count

    @property
    def size_bytes(self) -> int:
        return self._size_bytes

    @property
    def is_empty(self) -> bool:
        return self._count == 0

    def append(self, index_name: str, doc_id: Optional[str], record: dict) -> int:
        # Serialize both lines before touching state so a bad record leaves no half pair
        meta_line = to_json_line(index_action(index_name, doc_id))
        doc_line = to_json_line(record)

        self._lines.append(meta_line)
        self._lines.append(doc_line)
        self._size_bytes += len(meta_line.encode("utf-8")) + len(doc_line.encode("utf-8"))
        self._count += 1
        return self._count

    def drain(self) -> str:
        payload = "".join(self._lines)
        self._lines = []
        self._count = 0
        self._size_bytes = 0
        return payload
