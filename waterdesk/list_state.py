"""Client-side list state shared by every console list screen.

A screen hands the engine its raw collection (records as plain dicts) and a
:class:`ListSpec` describing which fields are searchable, which field the
categorical filter applies to and how each sort key is extracted. The engine
keeps the user-adjustable view parameters (search, filter, sort, page,
selection) consistent with the collection as records are created, replaced
and removed.

``compute_view`` is the pure core: same inputs, same page. The engine only
memoizes it and clamps the page number to what the filtered collection can
actually show.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Set, Tuple
from uuid import uuid4

import pandas as pd

from waterdesk.errors import DuplicateRecordError, RecordNotFoundError

Record = Dict[str, Any]

ALL = "all"
ASC = "asc"
DESC = "desc"
DEFAULT_PAGE_SIZE = 12


def get_path(record: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path through nested (populated) references."""
    value: Any = record
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Mapping):
        # a populated reference matches on its id, not its repr
        return _as_text(value.get("_id"))
    return str(value)


def _date_value(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    ts = pd.to_datetime(value, errors="coerce", utc=True)
    if pd.isna(ts):
        return None
    return ts.timestamp()


def _number_value(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


@dataclass(frozen=True)
class SortKey:
    """How to pull a comparable value out of a record.

    ``kind`` is ``text`` (lower-cased string), ``date`` (parsed timestamp) or
    ``number``. A custom ``extractor`` wins over ``kind``. ``None`` from either
    means the value is missing and the record sorts after every present value.
    """

    field: str
    kind: str = "text"
    label: str = ""
    extractor: Optional[Callable[[Mapping[str, Any]], Any]] = None

    def value(self, record: Mapping[str, Any]) -> Any:
        if self.extractor is not None:
            return self.extractor(record)
        raw = get_path(record, self.field)
        if self.kind == "date":
            return _date_value(raw)
        if self.kind == "number":
            return _number_value(raw)
        if raw is None:
            return None
        return str(raw).lower()


@dataclass(frozen=True)
class ListSpec:
    id_field: str
    search_fields: Tuple[str, ...]
    sort_keys: Mapping[str, SortKey]
    default_sort: str
    default_direction: str = ASC
    filter_field: Optional[str] = None
    filter_options: Tuple[str, ...] = ()
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self):
        if self.default_sort not in self.sort_keys:
            raise ValueError(f"default sort {self.default_sort!r} is not a declared sort key")
        if self.default_direction not in (ASC, DESC):
            raise ValueError(f"sort direction must be {ASC!r} or {DESC!r}")
        if self.page_size < 1:
            raise ValueError("page_size must be positive")


class ListView(NamedTuple):
    page_items: List[Record]
    total_filtered: int
    total_pages: int


class MutationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    BULK_DELETE = "bulk_delete"


def matches(record: Mapping[str, Any], search_term: str, categorical_filter: str, spec: ListSpec) -> bool:
    if search_term:
        needle = search_term.lower()
        if not any(needle in _as_text(get_path(record, f)).lower() for f in spec.search_fields):
            return False
    if spec.filter_field and categorical_filter != ALL:
        if _as_text(get_path(record, spec.filter_field)) != _as_text(categorical_filter):
            return False
    return True


def filter_records(
    items: Iterable[Record], search_term: str, categorical_filter: str, spec: ListSpec
) -> List[Record]:
    return [r for r in items if matches(r, search_term, categorical_filter, spec)]


def sort_records(records: Sequence[Record], sort_key: str, sort_direction: str, spec: ListSpec) -> List[Record]:
    """Stable sort; ties keep collection order and missing values go last."""
    try:
        key = spec.sort_keys[sort_key]
    except KeyError:
        raise ValueError(f"unknown sort key {sort_key!r}") from None
    present: List[Tuple[Any, Record]] = []
    missing: List[Record] = []
    for record in records:
        value = key.value(record)
        if value is None:
            missing.append(record)
        else:
            present.append((value, record))
    # sorted() keeps equal keys in input order even with reverse=True
    present.sort(key=lambda pair: pair[0], reverse=sort_direction == DESC)
    return [r for _, r in present] + missing


def total_pages_for(count: int, page_size: int) -> int:
    return math.ceil(count / page_size) if count else 0


def compute_view(
    items: Sequence[Record],
    search_term: str,
    categorical_filter: str,
    sort_key: str,
    sort_direction: str,
    page: int,
    page_size: int,
    *,
    spec: ListSpec,
) -> ListView:
    if page_size < 1:
        raise ValueError("page_size must be positive")
    filtered = sort_records(filter_records(items, search_term, categorical_filter, spec), sort_key, sort_direction, spec)
    start = (max(page, 1) - 1) * page_size
    return ListView(
        page_items=filtered[start:start + page_size],
        total_filtered=len(filtered),
        total_pages=total_pages_for(len(filtered), page_size),
    )


class ListStateEngine:
    """Owns one paginated, filterable, sortable, multi-select collection view."""

    def __init__(self, spec: ListSpec, items: Optional[Iterable[Record]] = None, *, page_size: Optional[int] = None):
        self.spec = spec
        self.page_size = page_size or spec.page_size
        self.items: List[Record] = []
        self.search_term = ""
        self.categorical_filter = ALL
        self.sort_key = spec.default_sort
        self.sort_direction = spec.default_direction
        self.page = 1
        self.selected_ids: Set[Any] = set()
        self._version = 0
        self._memo: Optional[Tuple[tuple, ListView]] = None
        if items is not None:
            self.replace_items(items)

    # ------------------------------------------------------------------ ids

    def record_id(self, record: Mapping[str, Any]) -> Any:
        return record.get(self.spec.id_field)

    def ids(self) -> List[Any]:
        return [self.record_id(r) for r in self.items]

    def _index_of(self, record_id: Any) -> Optional[int]:
        for i, record in enumerate(self.items):
            if self.record_id(record) == record_id:
                return i
        return None

    def get(self, record_id: Any) -> Optional[Record]:
        index = self._index_of(record_id)
        return None if index is None else self.items[index]

    # ------------------------------------------------------------------ view

    def _view_key(self) -> tuple:
        return (
            self._version,
            self.search_term,
            self.categorical_filter,
            self.sort_key,
            self.sort_direction,
            self.page,
            self.page_size,
        )

    def _compute(self) -> ListView:
        key = self._view_key()
        if self._memo is not None and self._memo[0] == key:
            return self._memo[1]
        view = compute_view(
            self.items,
            self.search_term,
            self.categorical_filter,
            self.sort_key,
            self.sort_direction,
            self.page,
            self.page_size,
            spec=self.spec,
        )
        self._memo = (key, view)
        return view

    def view(self) -> ListView:
        view = self._compute()
        last_page = max(1, view.total_pages)
        if self.page > last_page:
            self.page = last_page
            view = self._compute()
        return view

    def filtered(self) -> List[Record]:
        """Every record passing the current filters, in display order."""
        matched = filter_records(self.items, self.search_term, self.categorical_filter, self.spec)
        return sort_records(matched, self.sort_key, self.sort_direction, self.spec)

    def _clamp_page(self) -> None:
        count = len(filter_records(self.items, self.search_term, self.categorical_filter, self.spec))
        self.page = min(max(self.page, 1), max(1, total_pages_for(count, self.page_size)))

    # ------------------------------------------------------------ parameters

    def set_search(self, term: Optional[str]) -> None:
        term = term or ""
        if term != self.search_term:
            self.search_term = term
            self.page = 1

    def set_filter(self, value: Optional[str]) -> None:
        value = value or ALL
        if value != self.categorical_filter:
            self.categorical_filter = value
            self.page = 1

    def set_sort(self, sort_key: str, direction: Optional[str] = None) -> None:
        if sort_key not in self.spec.sort_keys:
            raise ValueError(f"unknown sort key {sort_key!r}")
        if direction is None:
            if sort_key == self.sort_key:
                direction = DESC if self.sort_direction == ASC else ASC
            else:
                direction = ASC
        if direction not in (ASC, DESC):
            raise ValueError(f"sort direction must be {ASC!r} or {DESC!r}")
        if (sort_key, direction) == (self.sort_key, self.sort_direction):
            return
        self.sort_key = sort_key
        self.sort_direction = direction
        self.page = 1

    def set_page(self, page: int) -> None:
        self.page = max(1, int(page))
        self._clamp_page()

    def next_page(self) -> None:
        self.set_page(self.page + 1)

    def prev_page(self) -> None:
        self.set_page(self.page - 1)

    def reset_view(self) -> None:
        self.search_term = ""
        self.categorical_filter = ALL
        self.sort_key = self.spec.default_sort
        self.sort_direction = self.spec.default_direction
        self.page = 1

    # ------------------------------------------------------------- selection

    def toggle_select(self, record_id: Any) -> None:
        if record_id in self.selected_ids:
            self.selected_ids.discard(record_id)
        elif self._index_of(record_id) is not None:
            self.selected_ids.add(record_id)

    def toggle_select_all_visible(self, page_items: Iterable[Mapping[str, Any]]) -> None:
        known = set(self.ids())
        visible = [self.record_id(r) for r in page_items if self.record_id(r) in known]
        if not visible:
            return
        if all(rid in self.selected_ids for rid in visible):
            self.selected_ids.difference_update(visible)
        else:
            self.selected_ids.update(visible)

    def clear_selection(self) -> None:
        self.selected_ids.clear()

    def selected_records(self) -> List[Record]:
        return [r for r in self.items if self.record_id(r) in self.selected_ids]

    def _prune_selection(self) -> None:
        self.selected_ids.intersection_update(self.ids())

    # ------------------------------------------------------------- mutations

    def _set_items(self, items: List[Record]) -> None:
        self.items = items
        self._version += 1
        self._prune_selection()
        self._clamp_page()

    def replace_items(self, records: Iterable[Mapping[str, Any]]) -> None:
        items = [dict(r) for r in records]
        seen: Set[Any] = set()
        for record in items:
            rid = self.record_id(record)
            if rid in seen:
                raise DuplicateRecordError(rid)
            seen.add(rid)
        self._set_items(items)

    def apply_mutation(self, kind: Any, payload: Mapping[str, Any]) -> None:
        kind = MutationKind(kind)
        if kind is MutationKind.CREATE:
            record = dict(payload["record"])
            rid = self.record_id(record)
            if rid is None:
                # not yet persisted; give it a client-side id
                rid = record[self.spec.id_field] = uuid4().hex
            if self._index_of(rid) is not None:
                raise DuplicateRecordError(rid)
            self._set_items(self.items + [record])
        elif kind is MutationKind.UPDATE:
            rid = payload["id"]
            index = self._index_of(rid)
            if index is None:
                raise RecordNotFoundError(rid)
            record = dict(payload["record"])
            new_id = record.setdefault(self.spec.id_field, rid)
            if new_id != rid and self._index_of(new_id) is not None:
                raise DuplicateRecordError(new_id)
            items = list(self.items)
            items[index] = record
            self._set_items(items)
        elif kind is MutationKind.DELETE:
            rid = payload["id"]
            self.selected_ids.discard(rid)
            self._set_items([r for r in self.items if self.record_id(r) != rid])
        else:
            doomed = set(payload["ids"])
            self.selected_ids.difference_update(doomed)
            self._set_items([r for r in self.items if self.record_id(r) not in doomed])

    # convenience wrappers used by the store
    def create(self, record: Mapping[str, Any]) -> None:
        self.apply_mutation(MutationKind.CREATE, {"record": record})

    def update(self, record_id: Any, record: Mapping[str, Any]) -> None:
        self.apply_mutation(MutationKind.UPDATE, {"id": record_id, "record": record})

    def delete(self, record_id: Any) -> None:
        self.apply_mutation(MutationKind.DELETE, {"id": record_id})

    def bulk_delete(self, record_ids: Iterable[Any]) -> None:
        self.apply_mutation(MutationKind.BULK_DELETE, {"ids": list(record_ids)})
