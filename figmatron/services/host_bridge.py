"""Pipeline-side channel to the canvas host.

Requests are posted through ``post_message`` and replies arrive through
``handle_message``. Pending requests live in two id-keyed waiter maps; each
entry is removed exactly once, whether it resolves, rejects, times out or is
canceled.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import TypeAdapter

from figmatron.models.protocol import (
    CancelRequestMessage,
    ContextPacket,
    ContextReadyMessage,
    InsertResultMessage,
    InsertSvgMessage,
    PluginResponseMessage,
    PrepareContextMessage,
    QueryMode,
    RequestCanceledMessage,
    RouteMode,
    SelectionInfo,
    SelectionStateMessage,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RESPONSE_ADAPTER: TypeAdapter[Any] = TypeAdapter(PluginResponseMessage)


class HostRequestError(Exception):
    """Failure of a host round trip. ``kind`` is ``timeout`` or ``canceled``."""

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind


@dataclass(frozen=True)
class ContextResult:
    context: ContextPacket
    error: Optional[str] = None


@dataclass(frozen=True)
class InsertResult:
    success: bool
    error: Optional[str] = None


@dataclass
class _Waiter(Generic[T]):
    future: "asyncio.Future[T]"
    timeout_handle: asyncio.TimerHandle


class _WaiterMap(Generic[T]):
    def __init__(self) -> None:
        self._entries: Dict[str, _Waiter[T]] = {}

    def keys(self) -> List[str]:
        return list(self._entries)

    def open(self, request_id: str, timeout_s: float, timeout_message: str) -> "asyncio.Future[T]":
        loop = asyncio.get_running_loop()
        stale = self._entries.pop(request_id, None)
        if stale is not None:
            stale.timeout_handle.cancel()
            if not stale.future.done():
                stale.future.set_exception(HostRequestError("canceled", "Superseded by a newer request."))
        future: asyncio.Future[T] = loop.create_future()
        handle = loop.call_later(
            timeout_s, self.reject, request_id, HostRequestError("timeout", timeout_message)
        )
        self._entries[request_id] = _Waiter(future, handle)
        return future

    def _take(self, request_id: str) -> Optional[_Waiter[T]]:
        waiter = self._entries.pop(request_id, None)
        if waiter is not None:
            waiter.timeout_handle.cancel()
        return waiter

    def resolve(self, request_id: str, value: T) -> bool:
        waiter = self._take(request_id)
        if waiter is None:
            return False
        if not waiter.future.done():
            waiter.future.set_result(value)
        return True

    def reject(self, request_id: str, error: BaseException) -> bool:
        waiter = self._take(request_id)
        if waiter is None:
            return False
        if not waiter.future.done():
            waiter.future.set_exception(error)
        return True

    def discard(self, request_id: str) -> None:
        waiter = self._take(request_id)
        if waiter is not None and not waiter.future.done():
            waiter.future.cancel()


class HostBridge:
    def __init__(
        self,
        post_message: Callable[[Any], None],
        *,
        context_timeout_s: float = 20.0,
        insert_timeout_s: float = 10.0,
        on_selection: Optional[Callable[[SelectionInfo], None]] = None,
    ) -> None:
        self.post_message = post_message
        self.context_timeout_s = context_timeout_s
        self.insert_timeout_s = insert_timeout_s
        self.on_selection = on_selection
        self.selection = SelectionInfo()
        self._context_waiters: _WaiterMap[ContextResult] = _WaiterMap()
        self._insert_waiters: _WaiterMap[InsertResult] = _WaiterMap()

    def pending_context_ids(self) -> List[str]:
        return self._context_waiters.keys()

    def pending_insert_ids(self) -> List[str]:
        return self._insert_waiters.keys()

    async def request_context(
        self,
        request_id: str,
        mode: QueryMode,
        include_screenshot: bool,
        max_screenshot_bytes: int,
    ) -> ContextResult:
        future = self._context_waiters.open(request_id, self.context_timeout_s, "Context request timed out.")
        self.post_message(PrepareContextMessage(
            request_id=request_id,
            mode=mode,
            include_screenshot=include_screenshot,
            max_screenshot_bytes=max_screenshot_bytes,
        ))
        try:
            return await future
        finally:
            # covers the awaiting task itself being cancelled
            self._context_waiters.discard(request_id)

    async def request_insertion(self, request_id: str, svg: str, mode: QueryMode, route: RouteMode) -> InsertResult:
        future = self._insert_waiters.open(request_id, self.insert_timeout_s, "Insertion timed out.")
        self.post_message(InsertSvgMessage(request_id=request_id, svg=svg, mode=mode, route=route))
        try:
            return await future
        finally:
            self._insert_waiters.discard(request_id)

    def cancel(self, request_id: str) -> None:
        """Ask the host to drop ``request_id`` and fail any local waiters for it."""
        self.post_message(CancelRequestMessage(request_id=request_id))
        self._reject_all(request_id)

    def _reject_all(self, request_id: str) -> None:
        self._context_waiters.reject(request_id, HostRequestError("canceled", "Request was canceled."))
        self._insert_waiters.reject(request_id, HostRequestError("canceled", "Request was canceled."))

    def handle_message(self, message: Any) -> None:
        if isinstance(message, dict):
            message = _RESPONSE_ADAPTER.validate_python(message)

        if isinstance(message, SelectionStateMessage):
            self.selection = message.selection
            if self.on_selection is not None:
                self.on_selection(message.selection)
            return

        if isinstance(message, ContextReadyMessage):
            result = ContextResult(context=message.context, error=message.error)
            if not self._context_waiters.resolve(message.request_id, result):
                logger.warning("Ignoring context reply for unknown request %s", message.request_id)
            return

        if isinstance(message, InsertResultMessage):
            result = InsertResult(success=message.success, error=message.error)
            if not self._insert_waiters.resolve(message.request_id, result):
                logger.warning("Ignoring insert reply for unknown request %s", message.request_id)
            return

        if isinstance(message, RequestCanceledMessage):
            self._reject_all(message.request_id)
            return

        logger.warning("Unhandled host message: %r", message)
