"""
protospawn/core/assets.py

Minimal asset subsystem used to gate spawning on asset readiness.

Load requests are buffered and completed cooperatively when update() is called,
which makes readiness callbacks the single suspension point of a spawn.
"""
from __future__ import annotations

import enum
import logging
import pathlib
from collections import defaultdict
from typing import Any, Callable, DefaultDict, Dict, List, Optional, Union

from pydantic_core import core_schema

logger = logging.getLogger(__name__)


class LoadState(enum.Enum):
    NOT_LOADED = 0
    LOADING = 1
    LOADED = 2
    FAILED = 3


class AssetRef:
    """
    A reference to an external asset by path and expected kind

    Attributes
    ----------
    path: str
        Path of the asset relative to the asset root
    kind: str
        The type of asset expected at the path (empty if unspecified)
    """

    __slots__ = "_path", "_kind"

    def __init__(self, path: str, kind: str = "") -> None:
        if not path:
            raise ValueError("Asset path cannot be empty")
        self._path: str = path
        self._kind: str = kind

    @property
    def path(self) -> str:
        return self._path

    @property
    def kind(self) -> str:
        return self._kind

    @classmethod
    def parse(cls, value: Any) -> AssetRef:
        """Build an AssetRef from a path string or a mapping with a 'path' key"""
        if isinstance(value, AssetRef):
            return value
        if isinstance(value, str):
            return cls(value)
        if isinstance(value, dict) and "path" in value:
            return cls(str(value["path"]), str(value.get("kind", "")))
        raise ValueError(f"Cannot interpret {value!r} as an asset reference")

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: Any
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls.parse,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda ref: ref.to_data()
            ),
        )

    def to_data(self) -> Union[str, Dict[str, str]]:
        if self._kind:
            return {"path": self._path, "kind": self._kind}
        return self._path

    def __eq__(self, other: object) -> bool:
        if isinstance(other, AssetRef):
            return self._path == other._path and self._kind == other._kind
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self._path, self._kind))

    def __repr__(self) -> str:
        return "{}(path={!r}, kind={!r})".format(
            self.__class__.__name__, self._path, self._kind
        )


class AssetHandle:
    """A handle to an asset requested from an AssetServer"""

    __slots__ = "_uid", "_path"

    def __init__(self, uid: int, path: str) -> None:
        self._uid: int = uid
        self._path: str = path

    @property
    def uid(self) -> int:
        return self._uid

    @property
    def path(self) -> str:
        return self._path

    def __eq__(self, other: object) -> bool:
        if isinstance(other, AssetHandle):
            return self._uid == other._uid
        return NotImplemented

    def __hash__(self) -> int:
        return self._uid

    def __repr__(self) -> str:
        return "{}(uid={}, path={!r})".format(
            self.__class__.__name__, self._uid, self._path
        )


ReadyCallback = Callable[[AssetHandle, LoadState], None]
ChangedCallback = Callable[[str], None]
AssetLoader = Callable[[pathlib.Path], Any]


def _read_bytes(path: pathlib.Path) -> Any:
    return path.read_bytes()


class AssetServer:
    """
    Loads assets on request and notifies listeners when they are ready

    Attributes
    ----------
    root: pathlib.Path
        Directory that asset paths are relative to
    _loaders: Dict[str, AssetLoader]
        Loader functions keyed by lowercase file extension
    _handles: Dict[str, AssetHandle]
        One handle per requested path
    _states: Dict[int, LoadState]
        Load state per handle id
    _assets: Dict[int, Any]
        Loaded asset values per handle id
    _failures: Dict[int, str]
        Failure reason per handle id
    _queue: List[AssetHandle]
        Handles waiting for the next update()
    _on_ready: DefaultDict[int, List[ReadyCallback]]
        Callbacks waiting for a handle to finish loading
    _on_changed: DefaultDict[str, List[ChangedCallback]]
        Callbacks waiting for change notifications of a path
    """

    __slots__ = (
        "root",
        "_loaders",
        "_handles",
        "_states",
        "_assets",
        "_failures",
        "_queue",
        "_on_ready",
        "_on_changed",
        "_next_id",
    )

    def __init__(self, root: Union[str, pathlib.Path] = ".") -> None:
        self.root: pathlib.Path = pathlib.Path(root)
        self._loaders: Dict[str, AssetLoader] = {}
        self._handles: Dict[str, AssetHandle] = {}
        self._states: Dict[int, LoadState] = {}
        self._assets: Dict[int, Any] = {}
        self._failures: Dict[int, str] = {}
        self._queue: List[AssetHandle] = []
        self._on_ready: DefaultDict[int, List[ReadyCallback]] = defaultdict(list)
        self._on_changed: DefaultDict[str, List[ChangedCallback]] = defaultdict(list)
        self._next_id: int = 0

    def register_loader(self, extension: str, loader: AssetLoader) -> None:
        """Use the given function to load files with the given extension"""
        self._loaders[extension.lstrip(".").lower()] = loader

    def request_load(self, path: str) -> AssetHandle:
        """Request an asset, returning the existing handle if it was requested before"""
        if path in self._handles:
            return self._handles[path]

        handle = AssetHandle(self._next_id, path)
        self._next_id += 1
        self._handles[path] = handle
        self._states[handle.uid] = LoadState.LOADING
        self._queue.append(handle)
        logger.debug("Queued asset load for '%s'", path)
        return handle

    def get_handle(self, path: str) -> Optional[AssetHandle]:
        return self._handles.get(path)

    def get_load_state(self, handle: AssetHandle) -> LoadState:
        return self._states.get(handle.uid, LoadState.NOT_LOADED)

    def is_ready(self, handle: AssetHandle) -> bool:
        return self.get_load_state(handle) == LoadState.LOADED

    def get(self, handle: AssetHandle) -> Optional[Any]:
        """Return the loaded asset, or None if it is not loaded"""
        return self._assets.get(handle.uid)

    def get_failure_reason(self, handle: AssetHandle) -> str:
        return self._failures.get(handle.uid, "")

    def subscribe_ready(self, handle: AssetHandle, continuation: ReadyCallback) -> None:
        """
        Call the continuation once the handle finishes loading or fails

        The continuation runs immediately when the handle has already settled.
        """
        state = self.get_load_state(handle)
        if state in (LoadState.LOADED, LoadState.FAILED):
            continuation(handle, state)
        else:
            self._on_ready[handle.uid].append(continuation)

    def subscribe_changed(self, asset_id: str, continuation: ChangedCallback) -> None:
        """Call the continuation every time the asset at the given path changes"""
        self._on_changed[asset_id].append(continuation)

    def unsubscribe_changed(self, asset_id: str, continuation: ChangedCallback) -> None:
        callbacks = self._on_changed.get(asset_id, [])
        if continuation in callbacks:
            callbacks.remove(continuation)

    def notify_changed(self, asset_id: str) -> None:
        """Inform listeners that the asset at the given path changed"""
        logger.debug("Asset '%s' changed", asset_id)
        for callback in list(self._on_changed.get(asset_id, [])):
            callback(asset_id)

    def complete(self, handle: AssetHandle, asset: Any) -> None:
        """Mark a handle as loaded with the given value"""
        if handle in self._queue:
            self._queue.remove(handle)
        self._assets[handle.uid] = asset
        self._failures.pop(handle.uid, None)
        self._settle(handle, LoadState.LOADED)

    def fail(self, handle: AssetHandle, reason: str) -> None:
        """Mark a handle as failed"""
        if handle in self._queue:
            self._queue.remove(handle)
        self._failures[handle.uid] = reason
        logger.warning("Failed to load asset '%s': %s", handle.path, reason)
        self._settle(handle, LoadState.FAILED)

    def update(self) -> int:
        """
        Load every queued asset and fire readiness callbacks

        Returns
        -------
        int
            The number of handles that settled
        """
        pending = self._queue
        self._queue = []

        for handle in pending:
            file_path = self.root / handle.path
            loader = self._loaders.get(file_path.suffix.lstrip(".").lower(), _read_bytes)
            try:
                asset = loader(file_path)
            except Exception as ex:
                self.fail(handle, "{}: {}".format(type(ex).__name__, ex))
            else:
                self.complete(handle, asset)

        return len(pending)

    def _settle(self, handle: AssetHandle, state: LoadState) -> None:
        self._states[handle.uid] = state
        for callback in self._on_ready.pop(handle.uid, []):
            callback(handle, state)
