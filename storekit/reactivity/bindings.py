"""
Reactive Accessor Bindings

🔄 Component-Owned Views of Cached Data:
A binding is what a screen component holds to read one row, one query, or one
signed file URL. It shows cached data synchronously when present, fetches on a
miss, and re-applies the cache whenever a write to its key is published, all
without the component issuing fetches itself.

Every binding reports an explicit tri-state:
- ``LoadState.LOADING``: no result yet (or the key is not ready)
- ``LoadState.NOT_FOUND``: looked up, nothing there (or disabled)
- ``LoadState.LOADED``: ``value`` holds the result

Example:
    binding = ItemBinding(store, "profile", "p1", on_change=rerender)
    binding.mount()
    ...
    binding.dispose()
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional, Tuple

from ..persistence.backends.interface import Match, SelectOptions
from ..persistence.cache.keys import NOT_FOUND, CacheEntry, TableKey
from ..persistence.errors import StoreError

logger = logging.getLogger(__name__)

ChangeCallback = Callable[['Binding'], Any]


class LoadState(Enum):
    LOADING = "loading"
    NOT_FOUND = "not_found"
    LOADED = "loaded"


@dataclass(frozen=True)
class BindingOptions:
    """Behaviour switches and query options of a binding"""
    disabled: bool = False
    # Show LOADING on key change; False keeps the previous value until the new one arrives
    reset_on_change: bool = True
    # Report LOADING instead of NOT_FOUND while disabled
    reset_on_disabled: bool = False
    offset: int = 0
    limit: Optional[int] = None
    order_by: Optional[str] = None
    order_by_desc: bool = False

    def select_options(self) -> SelectOptions:
        return SelectOptions(
            offset=self.offset,
            limit=self.limit,
            order_by=self.order_by,
            order_by_desc=self.order_by_desc
        )


class Binding(ABC):
    """
    Common state and lifecycle of all bindings.

    Results delivered after ``dispose`` are ignored. ``on_change`` is called
    with the binding after every visible change of state, value or error.
    """

    def __init__(self, on_change: Optional[ChangeCallback] = None):
        self.on_change = on_change
        self._state = LoadState.LOADING
        self._value: Any = None
        self._error: Optional[Exception] = None
        self._task: Optional[asyncio.Task] = None
        self._mounted = False
        self._disposed = False

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def value(self) -> Any:
        """The loaded value; None unless ``state`` is LOADED"""
        return self._value

    @property
    def error(self) -> Optional[Exception]:
        """Error of the last failed fetch, cleared by the next success"""
        return self._error

    @property
    def is_loading(self) -> bool:
        return self._state is LoadState.LOADING

    @property
    def is_not_found(self) -> bool:
        return self._state is LoadState.NOT_FOUND

    @property
    def is_loaded(self) -> bool:
        return self._state is LoadState.LOADED

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _set(self, state: LoadState, value: Any = None, error: Optional[Exception] = None):
        if state is self._state and value is self._value and error is self._error:
            return
        self._state = state
        self._value = value
        self._error = error
        self._emit()

    def _set_error(self, error: Exception):
        self._error = error
        self._emit()

    def _emit(self):
        if self.on_change is None or self._disposed:
            return
        try:
            self.on_change(self)
        except Exception:
            logger.exception(f"on_change callback of {self!r} failed")

    def _spawn(self, coro) -> asyncio.Task:
        self._task = asyncio.ensure_future(coro)
        return self._task

    async def wait(self):
        """Wait until no fetch started by this binding is pending"""
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    @abstractmethod
    def mount(self) -> 'Binding':
        """Attach to the current inputs and start loading"""
        pass

    def _teardown(self):
        pass

    def dispose(self):
        """Tear down; later results are discarded"""
        self._teardown()
        self._mounted = False
        self._disposed = True

    def __enter__(self):
        return self.mount()

    def __exit__(self, exc_type, exc, tb):
        self.dispose()
        return False

    def __repr__(self):
        return f"{type(self).__name__}(state={self._state.value})"


class StoreBinding(Binding):
    """
    Binding over one store key.

    Subclasses say how their inputs become a ``TableKey`` and how a cached
    value is presented.
    """

    def __init__(self, store, table: str,
                 options: Optional[BindingOptions] = None,
                 on_change: Optional[ChangeCallback] = None):
        super().__init__(on_change)
        self._store = store
        self.table = table
        self.options = options or BindingOptions()
        self._key: Optional[TableKey] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._applied_generation: Optional[int] = None
        self._task_key: Optional[TableKey] = None

    @property
    def key(self) -> Optional[TableKey]:
        return self._key

    @abstractmethod
    def _make_key(self) -> Optional[TableKey]:
        """Key for the current inputs, or None while they are not ready"""
        pass

    @abstractmethod
    def _present(self, value) -> Tuple[LoadState, Any]:
        """State and value shown for a cached value"""
        pass

    def mount(self) -> 'StoreBinding':
        """(Re)attach to the current key: teardown, cached read, subscribe, fetch on miss"""
        if self._disposed:
            raise RuntimeError(f"{self!r} is disposed")
        self._teardown()
        self._mounted = True
        self._applied_generation = None

        if self.options.disabled:
            self._key = None
            idle = LoadState.LOADING if self.options.reset_on_disabled else LoadState.NOT_FOUND
            self._set(idle, None)
            return self

        self._key = self._make_key()
        if self._key is None:
            # Inputs not ready yet (e.g. an id that depends on another load)
            self._set(LoadState.LOADING, None)
            return self

        entry = self._store.peek(self._key)
        if entry is not None:
            self._apply(entry)
        self._unsubscribe = self._store.subscribe(self._key, self._on_notify)
        if entry is None:
            self._fetch()
        return self

    def _teardown(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _rekey(self):
        # While disabled the new inputs are picked up by the next mount
        if not self._mounted or self.options.disabled:
            return
        if self._make_key() == self._key:
            return
        if self.options.reset_on_change:
            self._set(LoadState.LOADING, None)
        self.mount()

    def set_disabled(self, disabled: bool):
        if disabled == self.options.disabled:
            return
        self.options = replace(self.options, disabled=disabled)
        if self._mounted:
            if not disabled:
                # The disabled placeholder is not a lookup result
                self._set(LoadState.LOADING, None)
            self.mount()

    def refresh(self) -> Optional[asyncio.Task]:
        """Refetch from the backend, keeping the current value meanwhile"""
        if self._key is None or self._disposed:
            return None
        return self._spawn(self._load(self._key, self._store.reload))

    def _fetch(self):
        # One pending fetch per binding and key; the store coalesces across bindings
        if self._task is not None and not self._task.done() and self._task_key == self._key:
            return
        self._task_key = self._key
        self._spawn(self._load(self._key, self._store.ensure_loaded))

    async def _load(self, key: TableKey, loader):
        try:
            entry = await loader(key)
        except StoreError as e:
            if self._is_current(key):
                logger.warning(f"Fetch of {key} failed: {e}")
                self._set_error(e)
            return
        if self._is_current(key):
            self._apply(entry)

    def _is_current(self, key: TableKey) -> bool:
        return not self._disposed and self._mounted and key == self._key

    def _on_notify(self, _published: TableKey):
        if not self._is_current(self._key):
            return
        entry = self._store.peek(self._key)
        if entry is None:
            # Invalidated: keep showing the last value while refetching
            self._fetch()
        else:
            self._apply(entry)

    def _apply(self, entry: CacheEntry):
        if entry.generation == self._applied_generation and self._error is None:
            return
        self._applied_generation = entry.generation
        state, value = self._present(entry.value)
        self._set(state, value, None)


class ItemBinding(StoreBinding):
    """One row by id; NOT_FOUND when the row does not exist"""

    def __init__(self, store, table: str, record_id: Optional[str],
                 options: Optional[BindingOptions] = None,
                 on_change: Optional[ChangeCallback] = None):
        super().__init__(store, table, options, on_change)
        self.record_id = record_id

    def _make_key(self) -> Optional[TableKey]:
        if not self.record_id:
            return None
        return TableKey.for_id(self.table, self.record_id)

    def _present(self, value) -> Tuple[LoadState, Any]:
        if value is NOT_FOUND:
            return LoadState.NOT_FOUND, None
        return LoadState.LOADED, value

    def set_id(self, record_id: Optional[str], table: Optional[str] = None):
        self.record_id = record_id
        if table is not None:
            self.table = table
        self._rekey()


class MatchingBinding(StoreBinding):
    """All rows matching a filter; loaded value is a (possibly empty) tuple"""

    def __init__(self, store, table: str, match: Optional[Match],
                 options: Optional[BindingOptions] = None,
                 on_change: Optional[ChangeCallback] = None):
        super().__init__(store, table, options, on_change)
        self.match = match

    def _select_options(self) -> SelectOptions:
        return self.options.select_options()

    def _make_key(self) -> Optional[TableKey]:
        if self.match is None:
            return None
        return TableKey.for_match(self.table, self.match, self._select_options())

    def _present(self, value) -> Tuple[LoadState, Any]:
        if value is NOT_FOUND:
            return LoadState.LOADED, ()
        return LoadState.LOADED, value

    def set_match(self, match: Optional[Match], table: Optional[str] = None):
        self.match = match
        if table is not None:
            self.table = table
        self._rekey()


class FirstMatchingBinding(MatchingBinding):
    """First row matching a filter; NOT_FOUND when nothing matches"""

    def _select_options(self) -> SelectOptions:
        options = self.options.select_options()
        return options if options.limit is not None else options.with_limit(1)

    def _present(self, value) -> Tuple[LoadState, Any]:
        if value is NOT_FOUND or not value:
            return LoadState.NOT_FOUND, None
        return LoadState.LOADED, value[0]


class FileUrlBinding(Binding):
    """Signed URL of a stored file; NOT_FOUND for no path or a missing object"""

    def __init__(self, file_store, path: Optional[str],
                 on_change: Optional[ChangeCallback] = None):
        super().__init__(on_change)
        self._file_store = file_store
        self.path = path

    def mount(self) -> 'FileUrlBinding':
        if self._disposed:
            raise RuntimeError(f"{self!r} is disposed")
        self._mounted = True
        path = self.path
        if not path:
            self._set(LoadState.NOT_FOUND, None)
            return self
        cached = self._file_store.get_cached_url(path)
        if cached is not None:
            self._set(LoadState.LOADED, cached)
            if not self._file_store.needs_refresh(path):
                return self
        else:
            self._set(LoadState.LOADING, None)
        self._spawn(self._resolve(path))
        return self

    async def _resolve(self, path: str):
        url = await self._file_store.get_url_async(path)
        if self._disposed or path != self.path:
            return
        if url is None:
            self._set(LoadState.NOT_FOUND, None)
        else:
            self._set(LoadState.LOADED, url)

    def set_path(self, path: Optional[str]):
        if path == self.path:
            return
        self.path = path
        if self._mounted:
            self.mount()


__all__ = [
    "LoadState", "BindingOptions", "Binding", "StoreBinding",
    "ItemBinding", "MatchingBinding", "FirstMatchingBinding", "FileUrlBinding"
]
