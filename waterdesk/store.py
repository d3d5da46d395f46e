"""Console store: one explicit object holding every screen's collection.

Screens receive the store instead of reaching into shared ambient state. For
each resource it owns the list engine, knows where the collection lives (REST
backend or local storage) and turns fetch/mutation outcomes into the banners
the screen renders.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from waterdesk.api import ApiClient
from waterdesk.business import (
    connection_limit_guard,
    format_currency,
    generate_bill_from_reading,
    user_exists_guard,
)
from waterdesk.config import Settings, get_settings
from waterdesk.errors import FetchError, MutationError, RecordNotFoundError
from waterdesk.forms import ADD, FormState
from waterdesk.list_state import ListStateEngine, Record
from waterdesk.local_store import LocalResource, LocalStorage
from waterdesk.logging import get_logger
from waterdesk.resources import LOCAL, SEED_DATA, ResourceDefinition, get_resource

logger = get_logger(__name__)


class CollectionSource(Protocol):
    definition: ResourceDefinition

    def list(self) -> List[Record]: ...

    def create(self, payload: Dict[str, Any]) -> Record: ...

    def update(self, record_id: Any, payload: Dict[str, Any]) -> Record: ...

    def delete(self, record_id: Any) -> None: ...

    def submit(self, mode: str, record_id: Any, payload: Dict[str, Any]) -> Record: ...


@dataclass
class ScreenState:
    engine: ListStateEngine
    loaded: bool = False
    loading: bool = False
    load_error: Optional[str] = None
    banner: Optional[str] = None
    flash: Optional[str] = None
    generation: int = 0


@dataclass
class BulkDeleteResult:
    deleted: List[Any] = field(default_factory=list)
    failed: Dict[Any, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class ConsoleStore:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        api: Optional[ApiClient] = None,
        storage: Optional[LocalStorage] = None,
        sources: Optional[Mapping[str, CollectionSource]] = None,
    ):
        self.settings = settings or get_settings()
        self.api = api or ApiClient(self.settings.api_base_url, timeout=self.settings.api_timeout)
        self.storage = storage or LocalStorage(self.settings.local_storage_path)
        self._sources: Dict[str, CollectionSource] = dict(sources or {})
        self._screens: Dict[str, ScreenState] = {}

    # ----------------------------------------------------------- plumbing

    def source(self, key: str) -> CollectionSource:
        if key not in self._sources:
            definition = get_resource(key)
            if definition.persistence == LOCAL and self.settings.connections_backend == "local":
                seed = SEED_DATA.get(definition.storage_key or "", ())
                self._sources[key] = LocalResource(self.storage, definition, seed=seed)
            else:
                self._sources[key] = self.api.resource(definition)
        return self._sources[key]

    def screen(self, key: str) -> ScreenState:
        if key not in self._screens:
            definition = get_resource(key)
            engine = ListStateEngine(definition.list_spec, page_size=self.settings.page_size)
            self._screens[key] = ScreenState(engine=engine)
        return self._screens[key]

    def engine(self, key: str) -> ListStateEngine:
        return self.screen(key).engine

    def close(self) -> None:
        self.api.close()

    # ------------------------------------------------------------ loading

    def begin_load(self, key: str) -> int:
        screen = self.screen(key)
        screen.generation += 1
        screen.loading = True
        return screen.generation

    def finish_load(
        self,
        key: str,
        token: int,
        records: Optional[Iterable[Mapping[str, Any]]] = None,
        error: Optional[str] = None,
    ) -> bool:
        """Apply a load outcome unless a newer load superseded it."""
        screen = self.screen(key)
        if token != screen.generation:
            logger.info("stale_load_discarded", resource=key, token=token, current=screen.generation)
            return False
        screen.loading = False
        if error is not None:
            screen.load_error = error
            return False
        screen.engine.replace_items(records or [])
        screen.loaded = True
        screen.load_error = None
        return True

    def load(self, key: str, *, force: bool = False) -> bool:
        screen = self.screen(key)
        if screen.loaded and not force:
            return True
        token = self.begin_load(key)
        try:
            records = self.source(key).list()
        except FetchError as exc:
            logger.warning("resource_load_failed", resource=key, error=exc.message)
            return self.finish_load(key, token, error=exc.message)
        return self.finish_load(key, token, records=records)

    def records(self, key: str) -> List[Record]:
        self.load(key)
        return self.engine(key).items

    # ---------------------------------------------------------- mutations

    def open_form(self, key: str, record: Optional[Mapping[str, Any]] = None) -> FormState:
        definition = get_resource(key)
        if definition.read_only:
            raise ValueError(f"{definition.title} are read-only")
        guards = []
        if key == "connections":
            guards = [
                connection_limit_guard(self.records("connections")),
                user_exists_guard(self.records("users")),
            ]
        form = FormState(
            definition.template,
            definition.rules,
            guards=guards,
            numeric_fields=definition.numeric_fields,
            normalize=definition.normalize,
        )
        if record is None:
            form.open_add()
        else:
            form.open_edit(record.get(definition.id_field), record)
        return form

    def save(self, key: str, form: FormState) -> Optional[Record]:
        """Submit an open form and fold the saved record into the collection."""
        definition = get_resource(key)
        screen = self.screen(key)
        mode, edit_id = form.mode, form.edit_id
        saved = form.submit(self.source(key).submit)
        if saved is None:
            return None

        record_id = saved.get(definition.id_field)
        if record_id is None:
            # backend answered without an id; trust a fresh list instead
            self.load(key, force=True)
        elif mode == ADD:
            screen.engine.create(saved)
        else:
            try:
                screen.engine.update(edit_id, saved)
            except RecordNotFoundError:
                logger.warning("updated_record_missing", resource=key, record_id=edit_id)
                self.load(key, force=True)

        verb = "added" if mode == ADD else "updated"
        screen.flash = f"{definition.singular} {verb} successfully!"
        screen.banner = None
        self.audit(key, "create" if mode == ADD else "update", f"{definition.singular} {record_id or edit_id}")
        return saved

    def delete(self, key: str, record_id: Any) -> bool:
        definition = get_resource(key)
        screen = self.screen(key)
        try:
            self.source(key).delete(record_id)
        except MutationError as exc:
            screen.banner = f"Failed to delete {definition.singular.lower()}: {exc.message}"
            return False
        screen.engine.delete(record_id)
        screen.flash = f"{definition.singular} deleted successfully!"
        screen.banner = None
        self.audit(key, "delete", f"{definition.singular} {record_id}")
        return True

    def bulk_delete(self, key: str, record_ids: Iterable[Any]) -> BulkDeleteResult:
        """Delete concurrently, wait for every request, report failures per id."""
        definition = get_resource(key)
        screen = self.screen(key)
        source = self.source(key)
        ids = list(record_ids)
        result = BulkDeleteResult()
        if not ids:
            return result

        workers = min(self.settings.bulk_delete_workers, len(ids))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [(rid, pool.submit(source.delete, rid)) for rid in ids]
            for rid, future in futures:
                try:
                    future.result()
                except MutationError as exc:
                    result.failed[rid] = exc.message
                else:
                    result.deleted.append(rid)

        screen.engine.bulk_delete(result.deleted)
        logger.info("bulk_delete_settled", resource=key, deleted=len(result.deleted), failed=len(result.failed))
        if result.failed:
            reasons = "; ".join(f"{rid}: {msg}" for rid, msg in result.failed.items())
            screen.banner = f"Failed to delete {len(result.failed)} of {len(ids)} {definition.title.lower()} ({reasons})"
        else:
            screen.banner = None
        if result.deleted:
            screen.flash = f"Deleted {len(result.deleted)} {definition.title.lower()}."
            self.audit(key, "bulk_delete", ", ".join(str(rid) for rid in result.deleted))
        return result

    def generate_bill(self, reading_id: Any) -> Optional[Record]:
        """Issue an unpaid bill for a meter reading at the fixed tariff."""
        screen = self.screen("readings")
        reading = screen.engine.get(reading_id)
        if reading is None:
            raise RecordNotFoundError(reading_id)
        connection = reading.get("ConnectionID")
        if not isinstance(connection, Mapping):
            wanted = str(connection)
            connection = next(
                (c for c in self.records("connections") if wanted in (str(c.get("_id")), str(c.get("ConnectionID")))),
                {"_id": connection},
            )
        draft = generate_bill_from_reading(reading, connection)
        try:
            saved = self.source("bills").create(draft)
        except MutationError as exc:
            screen.banner = f"Failed to generate bill: {exc.message}"
            return None
        self.screen("bills").loaded = False
        screen.flash = f"Bill {saved.get('BillNumber') or saved.get('_id')} generated for {format_currency(saved.get('Amount'))}"
        screen.banner = None
        self.audit("bills", "create", f"Bill for reading {reading_id}")
        return saved

    def consume_flash(self, key: str) -> Optional[str]:
        screen = self.screen(key)
        message, screen.flash = screen.flash, None
        return message

    # -------------------------------------------------------------- audit

    def audit(self, key: str, action: str, details: str) -> None:
        """Best-effort audit trail entry for a successful mutation."""
        if not self.settings.audit_mutations or key == "audit":
            return
        entry = {
            "User": self.settings.audit_user,
            "Action": f"{key}:{action}",
            "Details": details,
            "Timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.source("audit").create(entry)
        except MutationError as exc:
            logger.warning("audit_write_failed", resource=key, action=action, error=exc.message)
            return
        # the audit screen refetches next time it is shown
        self.screen("audit").loaded = False
