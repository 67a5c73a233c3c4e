"""Receiver core: the per-request pipeline and the listener lifecycle.

Every configured endpoint path routes into the same pipeline:

    verify signature -> parse body -> answer handshakes -> dispatch + await ack

Authenticity and parse failures short-circuit before dispatch and are
answered through FastAPI exception handlers (401 / 400), which also publish
the error on the error channel. After dispatch, failures only ever reach the
error channel.
"""

from __future__ import annotations

import asyncio
import socket
import weakref
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from switchboard import __version__
from switchboard.ack import AckToken
from switchboard.config import Settings
from switchboard.emitter import EventEmitter, ErrorHandler, EventHandler
from switchboard.exceptions import (
    AuthenticityError,
    ConfigurationError,
    ListenError,
    PayloadParseError,
    ShutdownError,
)
from switchboard.handshake import intercept_handshake
from switchboard.logging import bind_context, configure_logging, get_logger, unbind_context
from switchboard.models import IncomingRequest, NormalizedEvent, ReceiverEvent
from switchboard.parsing import parse_body
from switchboard.respond import OutOfBandResponder
from switchboard.verification import verify_request

logger = get_logger(__name__)

_STARTUP_POLL_SECONDS = 0.01


def _bind_socket(host: str, port: int) -> socket.socket:
    """Bind a listening socket up front so bind failures surface as ListenError."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise ListenError(f"Could not bind {host}:{port}: {e.strerror or e}") from e
    sock.set_inheritable(True)
    return sock


class Receiver:
    """Receives signed webhook callbacks and hands them to subscribers.

    The FastAPI application is exposed as ``receiver.app`` and can be mounted
    or served by any ASGI server; ``start()`` / ``stop()`` run it on an
    embedded uvicorn server.

    Example:
        ```python
        receiver = Receiver.create(signing_secret=os.environ["SIGNING_SECRET"])

        @receiver.on_event
        async def handle(event: ReceiverEvent) -> None:
            event.ack()
            if event.respond is not None:
                event.respond({"text": "Got it"})

        @receiver.on_error
        def report(error: BaseException) -> None:
            logger.error("Receiver error", error=str(error))

        await receiver.start(3000)
        ...
        await receiver.stop()
        ```
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize the receiver.

        Args:
            settings: Receiver configuration.

        Raises:
            ConfigurationError: If the signing secret is empty.
        """
        if not settings.signing_secret:
            raise ConfigurationError("A non-empty signing secret is required")

        configure_logging(level=settings.log_level, format=settings.log_format)

        self.settings = settings
        self._emitter = EventEmitter()
        self._tokens: set[AckToken] = set()
        self._responders: weakref.WeakSet[OutOfBandResponder] = weakref.WeakSet()
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._socket: socket.socket | None = None
        self.app = self._build_app()

    @classmethod
    def create(cls, signing_secret: str, **overrides: Any) -> Receiver:
        """Create a receiver from keyword configuration.

        Args:
            signing_secret: Shared signing secret.
            **overrides: Any other Settings field.

        Raises:
            ConfigurationError: If the configuration is invalid.
        """
        try:
            settings = Settings(signing_secret=signing_secret, **overrides)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid receiver configuration: {e}") from e
        return cls(settings)

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> int | None:
        """Port the listener is bound to, while running."""
        if self._socket is None:
            return None
        return int(self._socket.getsockname()[1])

    @property
    def pending_events(self) -> int:
        """Number of dispatched events still waiting for acknowledgment."""
        return len(self._tokens)

    def on_event(self, handler: EventHandler) -> EventHandler:
        """Subscribe to normalized events (usable as a decorator)."""
        return self._emitter.on_event(handler)

    def on_error(self, handler: ErrorHandler) -> ErrorHandler:
        """Subscribe to the error channel (usable as a decorator)."""
        return self._emitter.on_error(handler)

    def _build_app(self) -> FastAPI:
        app = FastAPI(
            title="Switchboard",
            description="Inbound edge for signed webhook callbacks.",
            version=__version__,
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )

        @app.exception_handler(AuthenticityError)
        async def authenticity_error_handler(
            request: Request, exc: AuthenticityError
        ) -> JSONResponse:
            """Reject unauthenticated requests with 401 status."""
            logger.warning("Request authentication failed", error=exc.message, path=request.url.path)
            self._emitter.emit_error(exc)
            return JSONResponse(status_code=401, content=exc.to_dict())

        @app.exception_handler(PayloadParseError)
        async def payload_parse_error_handler(
            request: Request, exc: PayloadParseError
        ) -> JSONResponse:
            """Reject malformed bodies with 400 status."""
            logger.warning("Request body rejected", error=exc.message, path=request.url.path)
            self._emitter.emit_error(exc)
            return JSONResponse(status_code=400, content=exc.to_dict())

        for path in self.settings.endpoint_paths:
            app.add_api_route(
                path,
                self._handle_request,
                methods=["POST"],
                include_in_schema=False,
            )

        return app

    async def _handle_request(self, request: Request) -> Response:
        incoming = IncomingRequest(
            body=await request.body(),
            headers=request.headers,
            path=request.url.path,
        )
        bind_context(request_id=incoming.id, request_path=incoming.path)
        try:
            return await self.process(incoming)
        finally:
            unbind_context("request_id", "request_path", "event_id")

    async def process(self, incoming: IncomingRequest) -> Response:
        """Run one request through the pipeline and return its response.

        Args:
            incoming: The raw request.

        Returns:
            The single transport response for this request.

        Raises:
            AuthenticityError: If the request fails signature verification.
            PayloadParseError: If the body cannot be decoded.
        """
        if self._emitter.closed:
            logger.warning("Request refused, receiver is stopped")
            return Response(status_code=503)

        verify_request(
            signing_secret=self.settings.signing_secret,
            body=incoming.body,
            signature=incoming.header(self.settings.signature_header),
            timestamp=incoming.header(self.settings.timestamp_header),
            freshness_window=self.settings.freshness_window_seconds,
        )

        body = parse_body(incoming.body, incoming.content_type)

        handshake = intercept_handshake(body)
        if handshake is not None:
            return handshake

        event = NormalizedEvent(body=body, endpoint=incoming.path, received_at=incoming.received_at)
        bind_context(event_id=event.id)

        token = AckToken(
            self.settings.ack_timeout_seconds,
            on_timeout=self._emitter.emit_error,
            event_id=event.id,
        )
        responder = None
        if event.response_url is not None:
            responder = OutOfBandResponder(
                event.response_url,
                on_error=self._emitter.emit_error,
                timeout_seconds=self.settings.respond_timeout_seconds,
                event_id=event.id,
            )
            self._responders.add(responder)

        self._tokens.add(token)
        try:
            logger.debug("Dispatching event", event_type=event.type)
            self._emitter.emit_event(ReceiverEvent(event=event, ack_token=token, responder=responder))
            outcome = await token.wait()
        finally:
            self._tokens.discard(token)

        logger.info(
            "Event settled",
            event_type=event.type,
            state=outcome.state.value,
            status_code=outcome.status_code,
        )
        return outcome.to_response()

    async def start(self, port: int, host: str | None = None) -> uvicorn.Server:
        """Start listening for requests.

        Args:
            port: Port to listen on (0 picks a free port; see ``receiver.port``).
            host: Interface to bind. Defaults to ``settings.host``.

        Returns:
            The running uvicorn server.

        Raises:
            ListenError: If already running, or the listener cannot start.
        """
        if self._server is not None:
            raise ListenError("Receiver is already running")

        host = host or self.settings.host
        sock = _bind_socket(host, port)

        config = uvicorn.Config(self.app, log_config=None, lifespan="off", access_log=False)
        server = uvicorn.Server(config)
        self._emitter.reopen()
        serve_task = asyncio.create_task(server.serve(sockets=[sock]))

        while not server.started:
            if serve_task.done():
                sock.close()
                cause = None if serve_task.cancelled() else serve_task.exception()
                raise ListenError(f"Receiver failed to start on {host}:{port}") from cause
            await asyncio.sleep(_STARTUP_POLL_SECONDS)

        self._server = server
        self._serve_task = serve_task
        self._socket = sock
        logger.info(
            "Receiver listening",
            host=host,
            port=self.port,
            endpoints=self.settings.endpoint_paths,
        )
        return server

    async def stop(self) -> None:
        """Stop listening and settle everything still in flight.

        Idle acknowledgment tokens are cancelled (their requests get a 503),
        out-of-band deliveries and handler tasks are cancelled, and no event
        or error notification is delivered once this returns.

        Raises:
            ShutdownError: If the receiver is not running or fails to stop.
        """
        if self._server is None or self._serve_task is None:
            raise ShutdownError("Receiver is not running")

        server, serve_task, sock = self._server, self._serve_task, self._socket
        self._server = None
        self._serve_task = None
        self._socket = None

        # Refuse new requests before collecting the tokens to cancel
        self._emitter.close()
        cancelled = sum(token.cancel() for token in list(self._tokens))
        await asyncio.gather(*(responder.aclose() for responder in list(self._responders)))
        await self._emitter.aclose()

        server.should_exit = True
        try:
            await serve_task
        except Exception as e:
            raise ShutdownError(f"Receiver failed to shut down: {e}") from e
        finally:
            if sock is not None:
                sock.close()

        logger.info("Receiver stopped", cancelled_events=cancelled)
