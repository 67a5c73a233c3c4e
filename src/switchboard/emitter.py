"""Event and error subscription for a receiver.

Each receiver owns one EventEmitter. Subscribers are plain callables or
coroutine functions; coroutine handlers run as background tasks so a slow
handler never delays the acknowledgment deadline of the event it handles.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from switchboard.exceptions import EventHandlerError
from switchboard.logging import get_logger
from switchboard.models import ReceiverEvent

logger = get_logger(__name__)

EventHandler = Callable[[ReceiverEvent], Awaitable[None] | None]
ErrorHandler = Callable[[BaseException], Awaitable[None] | None]


class EventEmitter:
    """Publish/subscribe registry for receiver events and errors.

    Example:
        ```python
        emitter = EventEmitter()

        @emitter.on_event
        async def handle(event: ReceiverEvent) -> None:
            event.ack()

        @emitter.on_error
        def report(error: BaseException) -> None:
            print(error)
        ```
    """

    def __init__(self) -> None:
        self._event_handlers: list[EventHandler] = []
        self._error_handlers: list[ErrorHandler] = []
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_event_handlers(self) -> bool:
        return bool(self._event_handlers)

    def on_event(self, handler: EventHandler) -> EventHandler:
        """Subscribe to normalized events. Returns the handler (decorator friendly)."""
        self._event_handlers.append(handler)
        return handler

    def on_error(self, handler: ErrorHandler) -> ErrorHandler:
        """Subscribe to the error channel. Returns the handler (decorator friendly)."""
        self._error_handlers.append(handler)
        return handler

    def emit_event(self, event: ReceiverEvent) -> None:
        """Deliver an event to every event subscriber.

        A subscriber that raises is reported on the error channel as an
        EventHandlerError; the remaining subscribers still run.
        """
        event_id = event.event.id
        if self._closed:
            logger.warning("Event dropped after shutdown", event_id=event_id)
            return
        if not self._event_handlers:
            logger.warning("No event handlers registered", event_id=event_id)
            return

        for handler in list(self._event_handlers):
            try:
                result = handler(event)
            except Exception as e:
                self._handler_failed(event_id, e)
                continue
            if inspect.isawaitable(result):
                self._track(self._await_event_handler(event_id, result))

    def emit_error(self, error: BaseException) -> None:
        """Publish an error on the error channel.

        Errors with no subscriber, or emitted after close, are logged
        instead of delivered.
        """
        if self._closed or not self._error_handlers:
            logger.error(
                "Unhandled receiver error",
                error=str(error),
                code=getattr(error, "code", None),
                closed=self._closed,
            )
            return

        for handler in list(self._error_handlers):
            try:
                result = handler(error)
            except Exception:
                logger.exception("Error handler failed", error=str(error))
                continue
            if inspect.isawaitable(result):
                self._track(self._await_error_handler(error, result))

    def close(self) -> None:
        """Stop delivering notifications. Running handler tasks are left alone."""
        self._closed = True

    async def aclose(self) -> None:
        """Stop delivering notifications and cancel running handler tasks."""
        self.close()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def reopen(self) -> None:
        """Resume delivering notifications after a previous close."""
        self._closed = False

    def _track(self, awaitable: Awaitable[None]) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _await_event_handler(self, event_id: str, awaitable: Awaitable[None]) -> None:
        try:
            await awaitable
        except Exception as e:
            self._handler_failed(event_id, e)

    async def _await_error_handler(self, error: BaseException, awaitable: Awaitable[None]) -> None:
        try:
            await awaitable
        except Exception:
            logger.exception("Error handler failed", error=str(error))

    def _handler_failed(self, event_id: str, exc: Exception) -> None:
        logger.error("Event handler raised", event_id=event_id, error=repr(exc))
        error = EventHandlerError(event_id, exc)
        error.__cause__ = exc
        self.emit_error(error)
