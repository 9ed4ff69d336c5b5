# =============================================================================
# app/server.py - Process Supervisor
# =============================================================================
# Owns the listening socket and every process-level failure path:
# - port already in use / other bind errors  -> log, exit 1, serve nothing
# - unhandled asyncio task faults            -> log, graceful shutdown, exit 1
# - exceptions in background threads         -> log, graceful shutdown, exit 1
# - anything escaping the server itself      -> log, graceful shutdown, exit 1
# A signal-driven stop (SIGINT/SIGTERM, handled by uvicorn) exits 0.
# Restarting is left to whatever process manager runs the service.
#
# Fault records go to the logger's "exceptions" / "rejections" children,
# which configure_logging gives their own files under LOG_DIR.
# =============================================================================

import asyncio
import errno
import signal
import socket
import threading
import time
import traceback
from typing import Any

import uvicorn

from lib.log import EXCEPTIONS_CHANNEL, REJECTIONS_CHANNEL

EXIT_OK = 0
EXIT_FAILURE = 1

DEFAULT_BACKLOG = 2048


class TerminationRequested(SystemExit):
    """SIGTERM delivered outside uvicorn's own handler (e.g. re-raised after shutdown)."""


def _raise_termination(signum, frame):
    raise TerminationRequested(EXIT_OK)


class UptimeClock:
    """Monotonic seconds since the clock was created (process start by default)."""

    def __init__(self, started_at: float | None = None):
        self._started_at = time.monotonic() if started_at is None else started_at

    def uptime(self) -> float:
        return max(0.0, time.monotonic() - self._started_at)


# Created at import, i.e. during process bootstrap
PROCESS_CLOCK = UptimeClock()


class ProcessSupervisor:
    """
    Bind, serve and shut down one ASGI app, translating failures to exit codes.

    Args:
        app: ASGI application to serve
        settings: Settings (HOST, PORT, ENVIRONMENT, SHUTDOWN_TIMEOUT_SEC)
        logger: StructuredLogger for lifecycle and fault records
    """

    def __init__(self, app, settings, logger):
        self._app = app
        self._settings = settings
        self._logger = logger
        self._exceptions = logger.child(EXCEPTIONS_CHANNEL)
        self._rejections = logger.child(REJECTIONS_CHANNEL)
        self._server: uvicorn.Server | None = None
        self._exit_code = EXIT_OK

    @property
    def exit_code(self) -> int:
        return self._exit_code

    # -------------------------------------------------------------------------
    # Socket
    # -------------------------------------------------------------------------

    def bind(self) -> socket.socket:
        """
        Bind and listen on HOST:PORT.

        Raises:
            OSError: errno EADDRINUSE when the port is taken, others as-is
        """
        host, port = self._settings.HOST, self._settings.PORT
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(DEFAULT_BACKLOG)
        except OSError:
            sock.close()
            raise
        sock.set_inheritable(True)
        return sock

    # -------------------------------------------------------------------------
    # Fault handling
    # -------------------------------------------------------------------------

    def request_shutdown(self, exit_code: int = EXIT_FAILURE) -> None:
        """Stop accepting connections and let in-flight requests finish."""
        self._exit_code = max(self._exit_code, exit_code)
        if self._server is not None:
            self._server.should_exit = True

    def handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        """
        Event-loop exception handler: faults nobody awaited or caught.

        Equivalent of an unhandled promise rejection. Logged, then the
        server is asked to shut down.
        """
        exc = context.get("exception")
        stack = "".join(traceback.format_exception(exc)) if exc is not None else ""
        self._rejections.error(
            f"Unhandled Rejection: {context.get('message', 'unhandled exception in event loop')}",
            reason=repr(exc) if exc is not None else None,
            task=repr(context.get("task") or context.get("future")),
            stack=stack,
        )
        self.request_shutdown(EXIT_FAILURE)

    def handle_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        """threading.excepthook: an exception escaped a background thread."""
        if args.exc_type is SystemExit:
            return
        stack = "".join(traceback.format_exception(args.exc_type, args.exc_value, args.exc_traceback))
        thread_name = args.thread.name if args.thread is not None else None
        self._exceptions.error(
            f"Uncaught Exception: {args.exc_value}",
            thread=thread_name,
            stack=stack,
        )
        self.request_shutdown(EXIT_FAILURE)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def build_server(self) -> uvicorn.Server:
        config = uvicorn.Config(
            self._app,
            log_config=None,
            access_log=False,
            server_header=False,
            timeout_graceful_shutdown=self._settings.SHUTDOWN_TIMEOUT_SEC,
        )
        return uvicorn.Server(config)

    async def serve(self, sock: socket.socket) -> int:
        """Serve on an already bound socket until shutdown; returns the exit code."""
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(self.handle_loop_exception)
        self._server = self.build_server()

        try:
            await self._server.serve(sockets=[sock])
        except Exception as exc:
            self._exceptions.error(f"Uncaught Exception: {exc}", stack=traceback.format_exc())
            self._exit_code = EXIT_FAILURE
            await self._shutdown_after_fault()
        return self._exit_code

    async def _shutdown_after_fault(self) -> None:
        server = self._server
        if server is None or not server.started:
            return
        server.should_exit = True
        try:
            await server.shutdown()
        except Exception as exc:
            self._logger.error(f"Graceful shutdown failed: {exc}", stack=traceback.format_exc())

    def run(self) -> int:
        """
        Bind, serve and return the process exit code.

        Returns:
            0 after a normal stop, 1 after a bind failure or fatal fault
        """
        port = self._settings.PORT
        try:
            sock = self.bind()
        except OSError as exc:
            if exc.errno == errno.EADDRINUSE:
                self._logger.error(
                    f"Port {port} is already in use. Please stop the other process or choose a different port.",
                    port=port,
                )
            else:
                self._logger.error(
                    f"Server startup failed: {exc}",
                    port=port,
                    stack=traceback.format_exc(),
                )
            return EXIT_FAILURE

        self._logger.info(
            f"Server is running on port {sock.getsockname()[1]} in {self._settings.ENVIRONMENT} mode."
        )

        previous_hook = threading.excepthook
        threading.excepthook = self.handle_thread_exception
        previous_sigterm = self._install_sigterm_handler()
        try:
            return asyncio.run(self.serve(sock))
        except (KeyboardInterrupt, TerminationRequested):
            # uvicorn re-raises the captured SIGINT/SIGTERM once shutdown is complete
            self._logger.info("Server stopped.")
            return self._exit_code
        finally:
            if previous_sigterm is not None:
                signal.signal(signal.SIGTERM, previous_sigterm)
            threading.excepthook = previous_hook
            sock.close()

    def _install_sigterm_handler(self):
        """Map SIGTERM to TerminationRequested; returns the handler it replaced."""
        if threading.current_thread() is not threading.main_thread():
            return None
        return signal.signal(signal.SIGTERM, _raise_termination)
