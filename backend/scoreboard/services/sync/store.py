"""Remote store adapters.

A store holds one document per session code and pushes the full document to
every subscriber on each committed write, the writer included. ``set``
replaces the whole document; there is no field-level merge.
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import requests
import socketio

from config import Config

from .errors import AuthorityViolation, NetworkError, StaleWriteError, ValidationError


logger = logging.getLogger(__name__)

Document = Dict[str, Any]
# Called with the full document, or None once the document no longer exists
OnChange = Callable[[Optional[Document]], None]
Unsubscribe = Callable[[], None]

WS_NAMESPACE = '/ws'


class RemoteStore(ABC):
    """get/set/subscribe over a keyed document."""

    @abstractmethod
    def get(self, code: str) -> Optional[Document]:
        """Return the document for ``code`` or None when it does not exist."""

    @abstractmethod
    def set(self, code: str, document: Document) -> None:
        """Atomically overwrite the document for ``code``."""

    @abstractmethod
    def subscribe(self, code: str, on_change: OnChange) -> Unsubscribe:
        """Deliver every committed write for ``code`` to ``on_change``."""

    def close(self) -> None:
        pass


class InMemoryStore(RemoteStore):
    """Process-local store with synchronous fan-out.

    Subscribers receive a private deep copy, first of the current document on
    subscribe, then of every write.
    """

    def __init__(self):
        self._documents: Dict[str, Document] = {}
        self._subscribers: Dict[str, List[OnChange]] = {}
        self._lock = threading.RLock()

    def get(self, code: str) -> Optional[Document]:
        with self._lock:
            doc = self._documents.get(code)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, code: str, document: Document) -> None:
        with self._lock:
            self._documents[code] = copy.deepcopy(document)
        self._fan_out(code)

    def delete(self, code: str) -> None:
        with self._lock:
            self._documents.pop(code, None)
        self._fan_out(code)

    def subscribe(self, code: str, on_change: OnChange) -> Unsubscribe:
        with self._lock:
            self._subscribers.setdefault(code, []).append(on_change)
        on_change(self.get(code))

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(code, [])
                if on_change in callbacks:
                    callbacks.remove(on_change)
                if not callbacks:
                    self._subscribers.pop(code, None)

        return unsubscribe

    def subscriber_count(self, code: str) -> int:
        with self._lock:
            return len(self._subscribers.get(code, []))

    def _fan_out(self, code: str) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(code, []))
        for callback in callbacks:
            callback(self.get(code))


class HttpStore(RemoteStore):
    """Client for the scoreboard store service.

    Reads and writes go over HTTP with ``requests``; subscriptions ride a
    python-socketio client on the ``/ws`` namespace. Host credentials: the
    password is sent when the document is first created, the host token the
    service hands back is sent on every later write.
    """

    def __init__(
        self,
        base_url: str,
        *,
        host_password: Optional[str] = None,
        host_token: Optional[str] = None,
        timeout: float = 5.0,
        http: Optional[requests.Session] = None,
        sio_client: Optional[socketio.Client] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.host_password = host_password
        self.host_token = host_token
        self.timeout = timeout
        self.http = http or requests.Session()
        self._subscribers: Dict[str, List[OnChange]] = {}
        self._lock = threading.Lock()
        self._sio = sio_client or socketio.Client(reconnection=True)
        self._sio.on('connect', self._on_connect, namespace=WS_NAMESPACE)
        self._sio.on('snapshot', self._on_snapshot, namespace=WS_NAMESPACE)

    @classmethod
    def from_config(cls, config=Config, **kwargs) -> 'HttpStore':
        return cls(
            getattr(config, 'SCOREBOARD_API_URL', 'http://localhost:5000'),
            timeout=float(getattr(config, 'STORE_TIMEOUT_SEC', 5)),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------
    def _url(self, code: str, suffix: str = '') -> str:
        return f"{self.base_url}/api/sessions/{code}{suffix}"

    def get(self, code: str) -> Optional[Document]:
        try:
            resp = self.http.get(self._url(code), timeout=self.timeout)
        except requests.RequestException as exc:
            raise NetworkError(f"GET {code} failed: {exc}") from exc
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp)
        return resp.json()

    def set(self, code: str, document: Document) -> None:
        headers = {}
        if self.host_token:
            headers['X-Host-Token'] = self.host_token
        elif self.host_password:
            headers['X-Host-Password'] = self.host_password
        try:
            resp = self.http.put(self._url(code), json=document, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise NetworkError(f"PUT {code} failed: {exc}") from exc
        self._raise_for_status(resp)
        token = (resp.json() or {}).get('host_token')
        if token:
            self.host_token = token

    def claim_host(self, code: str, password: str) -> str:
        """Exchange the host password for a write token, e.g. after a reload."""
        try:
            resp = self.http.post(self._url(code, '/host'), json={'password': password}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise NetworkError(f"POST {code}/host failed: {exc}") from exc
        self._raise_for_status(resp)
        self.host_token = resp.json()['host_token']
        return self.host_token

    @staticmethod
    def _raise_for_status(resp: requests.Response) -> None:
        if resp.status_code < 400:
            return
        try:
            message = (resp.json() or {}).get('error') or resp.reason
        except ValueError:
            message = resp.reason
        if resp.status_code == 400:
            raise ValidationError(message)
        if resp.status_code == 403:
            raise AuthorityViolation(message)
        if resp.status_code == 409:
            raise StaleWriteError(message)
        raise NetworkError(f"{resp.status_code}: {message}")

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------
    def subscribe(self, code: str, on_change: OnChange) -> Unsubscribe:
        with self._lock:
            first = code not in self._subscribers
            self._subscribers.setdefault(code, []).append(on_change)
        client = self._sio
        if not client.connected:
            # The connect handler joins every subscribed room
            try:
                client.connect(self.base_url, namespaces=[WS_NAMESPACE], wait_timeout=self.timeout)
            except socketio.exceptions.ConnectionError as exc:
                with self._lock:
                    self._subscribers[code].remove(on_change)
                    if not self._subscribers[code]:
                        self._subscribers.pop(code)
                raise NetworkError(f"subscribe {code} failed: {exc}") from exc
        elif first:
            client.emit('subscribe', {'code': code}, namespace=WS_NAMESPACE)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(code, [])
                if on_change in callbacks:
                    callbacks.remove(on_change)
                last = code in self._subscribers and not callbacks
                if last:
                    self._subscribers.pop(code)
            if last and client.connected:
                client.emit('unsubscribe', {'code': code}, namespace=WS_NAMESPACE)

        return unsubscribe

    def _on_connect(self) -> None:
        with self._lock:
            codes = list(self._subscribers)
        for code in codes:
            logger.info(f"[subscribe] session={code} (re)joining room")
            self._sio.emit('subscribe', {'code': code}, namespace=WS_NAMESPACE)

    def _on_snapshot(self, data: Dict[str, Any]) -> None:
        code = str((data or {}).get('code') or '')
        with self._lock:
            callbacks = list(self._subscribers.get(code, []))
        for callback in callbacks:
            callback(copy.deepcopy((data or {}).get('document')))

    def close(self) -> None:
        if self._sio.connected:
            self._sio.disconnect()
        self.http.close()
