# informer.py
from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from kubernetes import client, watch
from kubernetes.client.rest import ApiException

logger = logging.getLogger("informer")

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"


@dataclass(frozen=True)
class Event:
    """A watch notification with the cached pre-change snapshot (if any)."""

    type: str
    obj: dict
    old: Optional[dict] = None


def object_key(obj: dict) -> Tuple[str, str]:
    m = (obj or {}).get("metadata", {}) or {}
    return (m.get("namespace", "") or "", m.get("name", "") or "")


class Informer:
    """List-then-watch one kind and feed every change to `handler`.

    The informer keeps the last seen object per (namespace, name) so that
    MODIFIED and DELETED events carry the old snapshot. Each watch ends after
    `resync_seconds`; the following re-list replays every live object as
    MODIFIED and synthesizes DELETED for objects that vanished meanwhile.
    """

    def __init__(
        self,
        name: str,
        list_func: Callable,
        handler: Callable[[Event], None],
        resync_seconds: int = 300,
        serialize: Optional[Callable] = None,
        watch_factory: Callable = watch.Watch,
        **list_kwargs,
    ):
        self.name = name
        self.list_func = list_func
        self.handler = handler
        self.resync_seconds = resync_seconds
        self.list_kwargs = list_kwargs
        self._serialize = serialize or client.ApiClient().sanitize_for_serialization
        self._watch_factory = watch_factory
        self._cache: Dict[Tuple[str, str], dict] = {}
        self._lock = threading.Lock()
        self._watcher = None

    def cached(self) -> List[dict]:
        with self._lock:
            return list(self._cache.values())

    def dispatch(self, event_type: str, obj: dict) -> None:
        key = object_key(obj)
        with self._lock:
            old = self._cache.get(key)
            if event_type == DELETED:
                self._cache.pop(key, None)
            else:
                self._cache[key] = obj
        if event_type == ADDED and old is not None:
            event_type = MODIFIED
        try:
            self.handler(Event(event_type, obj, old))
        except Exception:
            logger.exception("[%s] handler failed for %s %s/%s", self.name, event_type, *key)

    def relist(self) -> Optional[str]:
        data = self._serialize(self.list_func(**self.list_kwargs)) or {}
        seen = set()
        for obj in data.get("items", []) or []:
            seen.add(object_key(obj))
            self.dispatch(ADDED, obj)
        with self._lock:
            gone = [obj for key, obj in self._cache.items() if key not in seen]
        for obj in gone:
            self.dispatch(DELETED, obj)
        return ((data.get("metadata") or {}).get("resourceVersion")) or None

    def stop(self) -> None:
        with self._lock:
            watcher = self._watcher
        if watcher is not None:
            watcher.stop()

    def run(self, stop: threading.Event) -> None:
        resource_version: Optional[str] = None
        backoff = 1.0
        while not stop.is_set():
            watcher = None
            try:
                if resource_version is None:
                    resource_version = self.relist()
                watcher = self._watch_factory()
                with self._lock:
                    self._watcher = watcher
                stream = watcher.stream(
                    self.list_func,
                    resource_version=resource_version,
                    timeout_seconds=self.resync_seconds,
                    **self.list_kwargs,
                )
                for event in stream:
                    if stop.is_set():
                        break
                    event_type = event.get("type")
                    obj = event.get("raw_object") or {}
                    rv = ((obj.get("metadata") or {}).get("resourceVersion"))
                    if rv:
                        resource_version = rv
                    if event_type not in (ADDED, MODIFIED, DELETED):
                        continue
                    self.dispatch(event_type, obj)
                # watch timed out: re-list for a periodic resync
                resource_version = None
                backoff = 1.0
            except ApiException as exc:
                if exc.status == 410:
                    logger.warning("[%s] watch resource version expired, re-listing", self.name)
                    resource_version = None
                    continue
                if exc.status in (401, 403):
                    logger.error(
                        "[%s] Kubernetes API access denied (status=%s). Check controller RBAC.",
                        self.name,
                        exc.status,
                    )
                    return
                logger.exception("[%s] Kubernetes API watch error", self.name)
                stop.wait(backoff * (0.5 + random.random()))
                backoff = min(backoff * 2, 30.0)
            except Exception:
                logger.exception("[%s] unexpected watch error", self.name)
                stop.wait(backoff * (0.5 + random.random()))
                backoff = min(backoff * 2, 30.0)
            finally:
                if watcher is not None:
                    watcher.stop()
                with self._lock:
                    self._watcher = None
