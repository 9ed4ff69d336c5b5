# =============================================================================
# tests/test_server.py - Process Supervisor Tests
# =============================================================================
# Tests for app/server.py: uptime clock, bind failures and fault handling.
# Unit tests patch serving out; TestServingProcess runs the supervised
# server as a child process and checks its exit codes.
#
# Run with: pytest tests/test_server.py -v
# =============================================================================

import errno
import os
import signal
import socket
import subprocess
import sys
import threading
import time
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest

from app.server import EXIT_FAILURE, EXIT_OK, ProcessSupervisor, TerminationRequested, UptimeClock
from lib.log import EXCEPTIONS_CHANNEL, REJECTIONS_CHANNEL
from tests.conftest import RecordingLogger, make_settings

PROJECT_ROOT = Path(__file__).resolve().parent.parent

SERVE_MAIN = "from app.main import main; main()"

# Serves the real app plus a route that schedules a callback which raises
# on the event loop, outside any request.
SERVE_WITH_LOOP_FAULT = """
import asyncio
import sys

from starlette.responses import PlainTextResponse

from app.main import create_app
from app.server import ProcessSupervisor

app = create_app()


async def schedule_fault(request):
    asyncio.get_running_loop().call_soon(lambda: 1 / 0)
    return PlainTextResponse("scheduled")


app.state.router_table.register("GET", "/fault", schedule_fault)
sys.exit(ProcessSupervisor(app, app.state.settings, app.state.logger).run())
"""

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")


@pytest.fixture
def occupied_port():
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen(1)
    yield blocker.getsockname()[1]
    blocker.close()


def _supervisor(app, logger, **overrides):
    settings = make_settings(HOST="127.0.0.1", **overrides)
    return ProcessSupervisor(app, settings, logger)


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as candidate:
        candidate.bind(("127.0.0.1", 0))
        return candidate.getsockname()[1]


def _start_server(code: str, port: int) -> subprocess.Popen:
    env = dict(os.environ)
    env.update({
        "ENVIRONMENT": "development",
        "HOST": "127.0.0.1",
        "PORT": str(port),
        "PYTHONPATH": str(PROJECT_ROOT),
    })
    env.pop("LOG_DIR", None)
    return subprocess.Popen(
        [sys.executable, "-c", code],
        cwd=PROJECT_ROOT,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )


def _wait_until_serving(process: subprocess.Popen, port: int, timeout: float = 20.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if process.poll() is not None:
            raise AssertionError(f"server exited early with {process.returncode}")
        try:
            if httpx.get(f"http://127.0.0.1:{port}/api/health", timeout=1.0).status_code == 200:
                return
        except httpx.HTTPError:
            pass
        time.sleep(0.1)
    raise AssertionError("server did not start serving")


@pytest.fixture
def spawn_server():
    processes = []

    def spawn(code: str, port: int) -> subprocess.Popen:
        process = _start_server(code, port)
        processes.append(process)
        return process

    yield spawn
    for process in processes:
        if process.poll() is None:
            process.kill()
            process.communicate()


# =============================================================================
# UptimeClock
# =============================================================================

class TestUptimeClock:
    """Tests for the monotonic uptime source."""

    def test_uptime_is_non_negative_and_grows(self):
        clock = UptimeClock()
        first = clock.uptime()
        time.sleep(0.01)

        assert first >= 0
        assert clock.uptime() > first

    def test_explicit_start(self):
        clock = UptimeClock(started_at=time.monotonic() - 5)

        assert clock.uptime() >= 5

    def test_future_start_clamps_to_zero(self):
        assert UptimeClock(started_at=time.monotonic() + 60).uptime() == 0.0


# =============================================================================
# Binding
# =============================================================================

class TestBinding:
    """Bind failures end the process before any request is served."""

    def test_port_in_use_exits_1(self, app, logger, occupied_port):
        supervisor = _supervisor(app, logger, PORT=occupied_port)

        with patch.object(supervisor, "serve") as serve:
            exit_code = supervisor.run()

        assert exit_code == EXIT_FAILURE
        serve.assert_not_called()
        record = logger.at("error")[-1]
        assert record["message"].startswith(f"Port {occupied_port} is already in use")
        assert record["attributes"]["port"] == occupied_port

    def test_other_bind_error_exits_1(self, app, logger):
        supervisor = _supervisor(app, logger, PORT=3000)
        failure = OSError(errno.EACCES, "Permission denied")

        with patch.object(supervisor, "bind", side_effect=failure), \
                patch.object(supervisor, "serve") as serve:
            exit_code = supervisor.run()

        assert exit_code == EXIT_FAILURE
        serve.assert_not_called()
        record = logger.at("error")[-1]
        assert record["message"].startswith("Server startup failed")
        assert "Permission denied" in record["attributes"]["stack"]

    def test_bind_returns_listening_socket(self, app, logger):
        supervisor = _supervisor(app, logger, PORT=0)
        sock = supervisor.bind()
        try:
            port = sock.getsockname()[1]
            connection = socket.create_connection(("127.0.0.1", port), timeout=2)
            connection.close()
        finally:
            sock.close()

    def test_run_logs_startup_and_returns_serve_code(self, app, logger):
        supervisor = _supervisor(app, logger, PORT=0)

        async def fake_serve(sock):
            return EXIT_OK

        with patch.object(supervisor, "serve", side_effect=fake_serve):
            exit_code = supervisor.run()

        assert exit_code == EXIT_OK
        assert any(
            message.startswith("Server is running on port") and message.endswith("in development mode.")
            for message in logger.messages("info")
        )

    def test_run_restores_thread_excepthook(self, app, logger):
        supervisor = _supervisor(app, logger, PORT=0)
        previous = threading.excepthook

        async def fake_serve(sock):
            return EXIT_OK

        with patch.object(supervisor, "serve", side_effect=fake_serve):
            supervisor.run()

        assert threading.excepthook is previous

    @posix_only
    def test_run_restores_sigterm_handler(self, app, logger):
        supervisor = _supervisor(app, logger, PORT=0)
        previous = signal.getsignal(signal.SIGTERM)

        async def fake_serve(sock):
            assert signal.getsignal(signal.SIGTERM) is not previous
            return EXIT_OK

        with patch.object(supervisor, "serve", side_effect=fake_serve):
            supervisor.run()

        assert signal.getsignal(signal.SIGTERM) is previous

    def test_termination_after_serve_is_a_clean_stop(self, app, logger):
        supervisor = _supervisor(app, logger, PORT=0)

        async def terminated_serve(sock):
            raise TerminationRequested(EXIT_OK)

        with patch.object(supervisor, "serve", side_effect=terminated_serve):
            exit_code = supervisor.run()

        assert exit_code == EXIT_OK
        assert "Server stopped." in logger.messages("info")

    def test_termination_keeps_earlier_fault_code(self, app, logger):
        supervisor = _supervisor(app, logger, PORT=0)
        supervisor.request_shutdown(EXIT_FAILURE)

        async def terminated_serve(sock):
            raise TerminationRequested(EXIT_OK)

        with patch.object(supervisor, "serve", side_effect=terminated_serve):
            exit_code = supervisor.run()

        assert exit_code == EXIT_FAILURE


# =============================================================================
# Fault Handling
# =============================================================================

class TestFaultHandling:
    """Unhandled faults are logged and trigger a graceful shutdown."""

    def test_unhandled_loop_exception(self, app, logger):
        supervisor = _supervisor(app, logger)
        server = SimpleNamespace(should_exit=False)
        supervisor._server = server

        supervisor.handle_loop_exception(None, {
            "message": "Task exception was never retrieved",
            "exception": RuntimeError("lost"),
        })

        assert server.should_exit is True
        assert supervisor.exit_code == EXIT_FAILURE
        record = logger.at("error")[-1]
        assert record["message"] == "Unhandled Rejection: Task exception was never retrieved"
        assert "RuntimeError: lost" in record["attributes"]["stack"]

    def test_loop_exception_before_server_exists(self, app, logger):
        supervisor = _supervisor(app, logger)

        supervisor.handle_loop_exception(None, {"message": "oops"})

        assert supervisor.exit_code == EXIT_FAILURE

    def test_thread_exception(self, app, logger):
        supervisor = _supervisor(app, logger)
        server = SimpleNamespace(should_exit=False)
        supervisor._server = server

        try:
            raise ValueError("worker died")
        except ValueError as exc:
            args = SimpleNamespace(
                exc_type=ValueError,
                exc_value=exc,
                exc_traceback=exc.__traceback__,
                thread=SimpleNamespace(name="worker-1"),
            )
        supervisor.handle_thread_exception(args)

        assert server.should_exit is True
        assert supervisor.exit_code == EXIT_FAILURE
        record = logger.at("error")[-1]
        assert record["message"] == "Uncaught Exception: worker died"
        assert record["attributes"]["thread"] == "worker-1"

    def test_thread_system_exit_is_ignored(self, app, logger):
        supervisor = _supervisor(app, logger)
        args = SimpleNamespace(exc_type=SystemExit, exc_value=SystemExit(), exc_traceback=None, thread=None)

        supervisor.handle_thread_exception(args)

        assert supervisor.exit_code == EXIT_OK
        assert logger.at("error") == []

    def test_uncaught_server_fault_exits_1(self, app, logger):
        supervisor = _supervisor(app, logger, PORT=0)

        class ExplodingServer:
            started = False
            should_exit = False

            async def serve(self, sockets=None):
                raise RuntimeError("event loop corrupted")

        with patch.object(supervisor, "build_server", return_value=ExplodingServer()):
            exit_code = supervisor.run()

        assert exit_code == EXIT_FAILURE
        assert "Uncaught Exception: event loop corrupted" in logger.messages("error")

    def test_shutdown_request_keeps_worst_exit_code(self, app, logger):
        supervisor = _supervisor(app, logger)

        supervisor.request_shutdown(EXIT_FAILURE)
        supervisor.request_shutdown(EXIT_OK)

        assert supervisor.exit_code == EXIT_FAILURE

    def test_faults_use_their_channels(self, app):
        class ChannelLogger(RecordingLogger):
            def __init__(self):
                super().__init__()
                self.channels = {}

            def child(self, suffix):
                return self.channels.setdefault(suffix, RecordingLogger())

        logger = ChannelLogger()
        supervisor = _supervisor(app, logger)

        supervisor.handle_loop_exception(None, {"message": "lost task"})
        try:
            raise ValueError("worker died")
        except ValueError as exc:
            supervisor.handle_thread_exception(SimpleNamespace(
                exc_type=ValueError,
                exc_value=exc,
                exc_traceback=exc.__traceback__,
                thread=None,
            ))

        assert logger.channels[REJECTIONS_CHANNEL].messages("error") == ["Unhandled Rejection: lost task"]
        assert logger.channels[EXCEPTIONS_CHANNEL].messages("error") == ["Uncaught Exception: worker died"]
        assert logger.at("error") == []


# =============================================================================
# Serving Process
# =============================================================================

class TestServingProcess:
    """The supervised server run as its own process, end to end."""

    def test_occupied_port_exits_1(self, occupied_port, spawn_server):
        process = spawn_server(SERVE_MAIN, occupied_port)

        _, stderr = process.communicate(timeout=30)

        assert process.returncode == EXIT_FAILURE
        assert f"Port {occupied_port} is already in use" in stderr

    @posix_only
    def test_sigterm_stops_with_exit_0(self, spawn_server):
        port = _free_port()
        process = spawn_server(SERVE_MAIN, port)
        _wait_until_serving(process, port)

        process.send_signal(signal.SIGTERM)
        _, stderr = process.communicate(timeout=30)

        assert process.returncode == EXIT_OK
        assert "Shutting down" in stderr

    @posix_only
    def test_sigint_stops_with_exit_0(self, spawn_server):
        port = _free_port()
        process = spawn_server(SERVE_MAIN, port)
        _wait_until_serving(process, port)

        process.send_signal(signal.SIGINT)
        process.communicate(timeout=30)

        assert process.returncode == EXIT_OK

    def test_unhandled_loop_fault_exits_1(self, spawn_server):
        port = _free_port()
        process = spawn_server(SERVE_WITH_LOOP_FAULT, port)
        _wait_until_serving(process, port)

        assert httpx.get(f"http://127.0.0.1:{port}/fault", timeout=5.0).status_code == 200
        _, stderr = process.communicate(timeout=30)

        assert process.returncode == EXIT_FAILURE
        assert "Unhandled Rejection" in stderr
        assert "ZeroDivisionError" in stderr
