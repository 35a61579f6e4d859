"""Document store adapter.

The scheduling core only needs a narrow, collection-scoped interface:
get / set / update / delete by id, a filtered query with optional ordering and
limit, and an atomic counter increment. `DocumentStore` describes it;
`InMemoryDocumentStore` is the process-local implementation used by the
server, the demo seeder and the tests.

Contract for implementations: any failure of the backing store surfaces as
`StoreFailure` so callers can decide whether to degrade or propagate.
"""

from __future__ import annotations

import copy
import operator
import threading
import uuid
from typing import Any, Callable, Iterable, Protocol

from .errors import DocumentMissing, StoreFailure

Document = dict[str, Any]
Filter = tuple[str, str, Any]


def _in(value: Any, options: Any) -> bool:
    return isinstance(options, (list, tuple, set, frozenset)) and value in options


def _range(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    # Range filters never match documents that lack the field.
    def compare(value: Any, bound: Any) -> bool:
        return value is not None and op(value, bound)

    return compare


_OPS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": _range(operator.lt),
    "<=": _range(operator.le),
    ">": _range(operator.gt),
    ">=": _range(operator.ge),
    "in": _in,
}


class DocumentStore(Protocol):
    def get(self, collection: str, doc_id: str) -> Document | None: ...

    def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]: ...

    def set(self, collection: str, doc_id: str, data: Document, *, merge: bool = False) -> None: ...

    def update(self, collection: str, doc_id: str, data: Document) -> None: ...

    def delete(self, collection: str, doc_id: str) -> None: ...

    def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> int: ...


def new_id() -> str:
    return uuid.uuid4().hex[:20]


class InMemoryDocumentStore:
    """Thread-safe dict-of-dicts store.

    Documents are copied on the way in and on the way out, so callers can
    never mutate stored state by accident.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._collections: dict[str, dict[str, Document]] = {}

    def _collection(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    # -------------------- single documents --------------------

    def get(self, collection: str, doc_id: str) -> Document | None:
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, doc_id: str, data: Document, *, merge: bool = False) -> None:
        with self._lock:
            col = self._collection(collection)
            if merge and doc_id in col:
                col[doc_id].update(copy.deepcopy(data))
            else:
                col[doc_id] = copy.deepcopy(data)

    def update(self, collection: str, doc_id: str, data: Document) -> None:
        with self._lock:
            col = self._collection(collection)
            if doc_id not in col:
                raise DocumentMissing(f"Document {collection}/{doc_id} does not exist for update")
            col[doc_id].update(copy.deepcopy(data))

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._collection(collection).pop(doc_id, None)

    def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> int:
        """Atomically add `amount` to a numeric field and return the new value.

        The document is created when missing, with the field starting at 0.
        """
        with self._lock:
            doc = self._collection(collection).setdefault(doc_id, {})
            current = doc.get(field) or 0
            if not isinstance(current, int):
                raise StoreFailure(f"{collection}/{doc_id}.{field} is not an integer")
            doc[field] = current + amount
            return doc[field]

    # -------------------- queries --------------------

    def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        preds = []
        for fname, op, value in filters:
            fn = _OPS.get(op)
            if fn is None:
                raise StoreFailure(f"Unsupported filter operator {op!r}")
            preds.append((fname, fn, value))

        with self._lock:
            docs = list(self._collection(collection).values())

            try:
                results = [
                    d for d in docs if all(fn(d.get(fname), value) for fname, fn, value in preds)
                ]
                if order_by is not None:
                    # Documents without the field sort last regardless of direction.
                    present = [d for d in results if d.get(order_by) is not None]
                    missing = [d for d in results if d.get(order_by) is None]
                    present.sort(key=lambda d: d[order_by], reverse=descending)
                    results = present + missing
            except TypeError as e:
                raise StoreFailure(f"Query on {collection} compared incompatible values: {e}") from e

            if limit is not None:
                results = results[: max(0, limit)]
            return copy.deepcopy(results)
