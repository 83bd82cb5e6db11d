"""Lifecycle of claude CLI child processes.

Two kinds of invocation are managed:

* the interactive session process, which speaks stream-json on stdin/stdout
  for one turn and is resumed with ``--resume`` on the next;
* the diagnostic invocation used for rate-limit telemetry, a short ``-p``
  run with debug logging whose combined output is scraped for headers.

Only one diagnostic runs per process at a time. Callers that ask while one
is in flight get the same ``concurrent.futures.Future``. A diagnostic that
overruns its timeout is sent SIGTERM, then SIGKILL after a grace period, and
resolves to ``None``.
"""

import logging
from concurrent.futures import Future

import orjson
from PySide6.QtCore import QObject, QProcess, QProcessEnvironment, QTimer, Signal, Slot

from claude_panel.services.line_decoder import LineDecoder
from claude_panel.types.session import ProcessErrorKind, SendOptions
from claude_panel.utils.cli_args import (
    DIAGNOSTIC_ARGS,
    DIAGNOSTIC_ENV,
    SESSION_ENV,
    build_session_args,
    build_user_message,
    is_compatible_version,
    parse_cli_version,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_KILL_GRACE_MS = 5000
VERSION_TIMEOUT_MS = 5000
# How long to wait for the exit notification after SIGKILL before giving up on it
KILL_WAIT_MS = 1000

AUTH_ERROR_MARKERS = ("invalid api key", "please run /login", "not logged in", "authentication_error")

MISSING_CLI_MESSAGE = (
    "Claude CLI not found. Install it with "
    "'npm install -g @anthropic-ai/claude-code' and make sure it is on PATH."
)

# In-flight diagnostic shared by every manager in this process
_diagnostic_future: Future | None = None


def shared_diagnostic_future() -> Future | None:
    return _diagnostic_future


def _disconnect(signal, slot):
    try:
        signal.disconnect(slot)
    except (RuntimeError, TypeError):
        pass


def _resolved(value) -> Future:
    future = Future()
    future.set_result(value)
    return future


def classify_exit_error(stderr: str) -> ProcessErrorKind:
    lowered = stderr.lower()
    if any(marker in lowered for marker in AUTH_ERROR_MARKERS):
        return ProcessErrorKind.AUTH_REQUIRED
    return ProcessErrorKind.GENERIC


class CliProcessManager(QObject):
    """Spawns and supervises claude CLI processes on the Qt event loop."""

    record_received = Signal(dict)
    session_started = Signal()
    session_finished = Signal(int)  # exit code, -1 if it never ran
    session_error = Signal(str, str)  # ProcessErrorKind value, message
    diagnostic_escalated = Signal(str)  # "terminate" or "kill"
    cli_version_checked = Signal(str, bool)  # version, compatible

    def __init__(
        self,
        cli_command: list[str] | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        kill_grace_ms: int = DEFAULT_KILL_GRACE_MS,
        parent=None,
    ):
        super().__init__(parent)
        self._command = list(cli_command or ["claude"])
        self._timeout_ms = timeout_ms
        self._kill_grace_ms = kill_grace_ms
        self._disposed = False

        # Interactive session
        self._session_process: QProcess | None = None
        self._decoder = LineDecoder()
        self._stderr = bytearray()
        self._pending_input: list[bytes] = []
        self._close_input_on_start = False
        self._session_live = False
        self._stopping = False
        self._session_killed = False

        # Diagnostic
        self._diag_process: QProcess | None = None
        self._diag_future: Future | None = None
        self._diag_stdout = bytearray()
        self._diag_stderr = bytearray()
        self._diag_timed_out = False
        self._diag_killed = False

        # Version check
        self._version_process: QProcess | None = None
        self._version_killed = False

        self._session_kill_timer = self._make_timer(self._on_session_kill_timeout)
        self._diag_timer = self._make_timer(self._on_diag_timeout)
        self._diag_kill_timer = self._make_timer(self._on_diag_kill_timeout)
        self._version_timer = self._make_timer(self._on_version_timeout)

    def _make_timer(self, slot) -> QTimer:
        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.timeout.connect(slot)
        return timer

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def command(self) -> list[str]:
        return list(self._command)

    def set_command(self, cli_command: list[str]):
        if cli_command:
            self._command = list(cli_command)

    def set_timeouts(self, timeout_ms: int, kill_grace_ms: int):
        self._timeout_ms = max(1, timeout_ms)
        self._kill_grace_ms = max(1, kill_grace_ms)

    def _new_process(self, args: list[str], extra_env: dict[str, str]) -> QProcess:
        proc = QProcess(self)
        proc.setProgram(self._command[0])
        proc.setArguments(self._command[1:] + args)
        env = QProcessEnvironment.systemEnvironment()
        for key, value in extra_env.items():
            env.insert(key, value)
        proc.setProcessEnvironment(env)
        return proc

    # ------------------------------------------------------------------
    # Interactive session
    # ------------------------------------------------------------------

    @property
    def session_running(self) -> bool:
        return self._session_process is not None

    def start_session(self, message: str, options: SendOptions, session_id: str | None = None) -> bool:
        """Spawn the interactive process for one turn and send the prompt."""
        if self._disposed:
            return False
        if self._session_process is not None:
            logger.warning("Session process already running, not starting another")
            return False

        proc = self._new_process(build_session_args(options, session_id), SESSION_ENV)
        if options.cwd:
            proc.setWorkingDirectory(options.cwd)

        proc.started.connect(self._on_session_started)
        proc.readyReadStandardOutput.connect(self._on_session_stdout)
        proc.readyReadStandardError.connect(self._on_session_stderr)
        proc.finished.connect(self._on_session_finished)
        proc.errorOccurred.connect(self._on_session_error)

        self._decoder.reset()
        self._stderr = bytearray()
        self._pending_input = []
        self._close_input_on_start = False
        self._session_live = False
        self._stopping = False
        self._session_killed = False
        self._session_process = proc

        logger.info("Starting claude session (resume=%s)", session_id or "-")
        self.write_line(build_user_message(message, options, session_id))
        proc.start()
        return True

    def write_line(self, record: dict) -> bool:
        """Write one JSON record plus newline to the session's stdin."""
        proc = self._session_process
        if proc is None or self._stopping:
            return False
        line = orjson.dumps(record) + b"\n"
        if not self._session_live:
            # Delivered from _on_session_started
            self._pending_input.append(line)
            return True
        if proc.state() != QProcess.ProcessState.Running:
            return False
        return proc.write(line) == len(line)

    @Slot()
    def end_input(self):
        proc = self._session_process
        if proc is None:
            return
        if self._session_live:
            proc.closeWriteChannel()
        else:
            self._close_input_on_start = True

    @Slot()
    def stop_session(self):
        """User stop: terminate, then kill after the grace period. Not an error."""
        proc = self._session_process
        if proc is None:
            return
        self._stopping = True
        self._pending_input = []
        if proc.state() == QProcess.ProcessState.NotRunning:
            self._finish_session(-1)
            return
        logger.info("Stopping claude session process")
        proc.terminate()
        self._session_kill_timer.start(self._kill_grace_ms)

    @Slot()
    def _on_session_started(self):
        proc = self._session_process
        if proc is None:
            return
        self._session_live = True
        for line in self._pending_input:
            proc.write(line)
        self._pending_input = []
        if self._close_input_on_start:
            proc.closeWriteChannel()
        self.session_started.emit()

    @Slot()
    def _on_session_stdout(self):
        proc = self._session_process
        if proc is None:
            return
        data = proc.readAllStandardOutput().data()
        if self._stopping:
            # Output after a user stop belongs to a turn nobody is waiting for
            return
        for record in self._decoder.feed(data):
            self.record_received.emit(record)

    @Slot()
    def _on_session_stderr(self):
        proc = self._session_process
        if proc is None:
            return
        self._stderr += proc.readAllStandardError().data()

    @Slot(int, QProcess.ExitStatus)
    def _on_session_finished(self, exit_code: int, exit_status: QProcess.ExitStatus):
        proc = self._session_process
        if proc is None:
            return
        # Drain anything still buffered before the exit notification
        data = proc.readAllStandardOutput().data()
        if not self._stopping:
            for record in self._decoder.feed(data) + self._decoder.flush():
                self.record_received.emit(record)
        self._stderr += proc.readAllStandardError().data()

        if not self._stopping and (exit_status == QProcess.ExitStatus.CrashExit or exit_code != 0):
            stderr = self._stderr.decode("utf-8", errors="replace").strip()
            kind = classify_exit_error(stderr)
            message = stderr or f"Claude process exited with code {exit_code}"
            logger.warning("Claude session failed (%s): %s", kind.value, message)
            self.session_error.emit(kind.value, message)
        elif self._stderr:
            logger.debug("Claude stderr: %s", self._stderr.decode("utf-8", errors="replace"))

        self._finish_session(exit_code)

    @Slot(QProcess.ProcessError)
    def _on_session_error(self, error: QProcess.ProcessError):
        if error != QProcess.ProcessError.FailedToStart or self._session_process is None:
            logger.debug("Session process error: %s", error)
            return
        logger.error("Failed to start %s", self._command[0])
        self.session_error.emit(ProcessErrorKind.EXECUTABLE_MISSING.value, MISSING_CLI_MESSAGE)
        self._finish_session(-1)

    @Slot()
    def _on_session_kill_timeout(self):
        proc = self._session_process
        if proc is None:
            return
        if self._session_killed:
            logger.warning("No exit notification after killing the session process")
            self._finish_session(-1)
            return
        logger.warning("Session process ignored SIGTERM, killing")
        proc.kill()
        # _on_session_finished completes the teardown
        self._session_killed = True
        self._session_kill_timer.start(KILL_WAIT_MS)

    def _finish_session(self, exit_code: int):
        proc, self._session_process = self._session_process, None
        if proc is None:
            return
        self._session_kill_timer.stop()
        _disconnect(proc.started, self._on_session_started)
        _disconnect(proc.readyReadStandardOutput, self._on_session_stdout)
        _disconnect(proc.readyReadStandardError, self._on_session_stderr)
        _disconnect(proc.finished, self._on_session_finished)
        _disconnect(proc.errorOccurred, self._on_session_error)
        proc.deleteLater()
        self._decoder.reset()
        self._pending_input = []
        self._session_live = False
        self._stopping = False
        self._session_killed = False
        self.session_finished.emit(exit_code)

    # ------------------------------------------------------------------
    # Diagnostic invocation
    # ------------------------------------------------------------------

    @property
    def diagnostic_running(self) -> bool:
        return self._diag_process is not None

    def run_diagnostic(self) -> Future:
        """Run (or join) the diagnostic call; resolves to its output or None."""
        global _diagnostic_future
        if _diagnostic_future is not None and not _diagnostic_future.done():
            logger.debug("Diagnostic already in flight, joining it")
            return _diagnostic_future
        if self._disposed:
            return _resolved(None)

        future = Future()
        _diagnostic_future = future
        self._diag_future = future
        self._diag_stdout = bytearray()
        self._diag_stderr = bytearray()
        self._diag_timed_out = False
        self._diag_killed = False

        proc = self._new_process(list(DIAGNOSTIC_ARGS), DIAGNOSTIC_ENV)
        proc.setStandardInputFile(QProcess.nullDevice())
        proc.readyReadStandardOutput.connect(self._on_diag_stdout)
        proc.readyReadStandardError.connect(self._on_diag_stderr)
        proc.finished.connect(self._on_diag_finished)
        proc.errorOccurred.connect(self._on_diag_error)
        self._diag_process = proc

        logger.debug("Running usage diagnostic: %s", " ".join(self._command + DIAGNOSTIC_ARGS))
        self._diag_timer.start(self._timeout_ms)
        proc.start()
        return future

    @Slot()
    def _on_diag_stdout(self):
        if self._diag_process is not None:
            self._diag_stdout += self._diag_process.readAllStandardOutput().data()

    @Slot()
    def _on_diag_stderr(self):
        if self._diag_process is not None:
            self._diag_stderr += self._diag_process.readAllStandardError().data()

    @Slot(int, QProcess.ExitStatus)
    def _on_diag_finished(self, exit_code: int, exit_status: QProcess.ExitStatus):
        proc = self._diag_process
        if proc is None:
            return
        if self._diag_timed_out:
            self._finish_diagnostic(None)
            return
        self._diag_stdout += proc.readAllStandardOutput().data()
        self._diag_stderr += proc.readAllStandardError().data()
        if exit_code != 0:
            logger.debug("Usage diagnostic exited with code %d", exit_code)
        output = (self._diag_stdout + b"\n" + self._diag_stderr).decode("utf-8", errors="replace")
        self._finish_diagnostic(output)

    @Slot(QProcess.ProcessError)
    def _on_diag_error(self, error: QProcess.ProcessError):
        if error != QProcess.ProcessError.FailedToStart:
            logger.debug("Diagnostic process error: %s", error)
            return
        logger.warning("Usage diagnostic could not start %s", self._command[0])
        self._finish_diagnostic(None)

    @Slot()
    def _on_diag_timeout(self):
        proc = self._diag_process
        if proc is None:
            return
        logger.warning("Usage diagnostic timed out after %d ms, terminating", self._timeout_ms)
        self._diag_timed_out = True
        proc.terminate()
        self.diagnostic_escalated.emit("terminate")
        self._diag_kill_timer.start(self._kill_grace_ms)

    @Slot()
    def _on_diag_kill_timeout(self):
        proc = self._diag_process
        if proc is None:
            return
        if self._diag_killed:
            logger.warning("No exit notification after killing the usage diagnostic")
            self._finish_diagnostic(None)
            return
        logger.warning("Usage diagnostic ignored SIGTERM, killing")
        proc.kill()
        self.diagnostic_escalated.emit("kill")
        # _on_diag_finished resolves the future once the exit is reported
        self._diag_killed = True
        self._diag_kill_timer.start(KILL_WAIT_MS)

    def _finish_diagnostic(self, output: str | None):
        global _diagnostic_future
        proc, self._diag_process = self._diag_process, None
        if proc is None:
            return
        self._diag_timer.stop()
        self._diag_kill_timer.stop()
        _disconnect(proc.readyReadStandardOutput, self._on_diag_stdout)
        _disconnect(proc.readyReadStandardError, self._on_diag_stderr)
        _disconnect(proc.finished, self._on_diag_finished)
        _disconnect(proc.errorOccurred, self._on_diag_error)
        proc.deleteLater()
        self._diag_stdout = bytearray()
        self._diag_stderr = bytearray()
        self._diag_killed = False

        future, self._diag_future = self._diag_future, None
        # Cleared before resolving so done-callbacks may start the next run
        if _diagnostic_future is future:
            _diagnostic_future = None
        if future is not None and not future.done():
            future.set_result(output)

    # ------------------------------------------------------------------
    # Version check
    # ------------------------------------------------------------------

    @Slot()
    def check_cli_version(self):
        """Run ``claude --version`` and report whether it is recent enough."""
        if self._disposed or self._version_process is not None:
            return
        proc = self._new_process(["--version"], {})
        proc.setStandardInputFile(QProcess.nullDevice())
        proc.finished.connect(self._on_version_finished)
        proc.errorOccurred.connect(self._on_version_error)
        self._version_process = proc
        self._version_killed = False
        self._version_timer.start(VERSION_TIMEOUT_MS)
        proc.start()

    @Slot(int, QProcess.ExitStatus)
    def _on_version_finished(self, exit_code: int, exit_status: QProcess.ExitStatus):
        proc = self._version_process
        if proc is None:
            return
        if self._version_killed:
            self._finish_version_check()
            self.cli_version_checked.emit("", False)
            return
        output = proc.readAllStandardOutput().data().decode("utf-8", errors="replace")
        self._finish_version_check()
        version = parse_cli_version(output)
        text = ".".join(str(part) for part in version) if version else ""
        compatible = exit_code == 0 and is_compatible_version(version)
        if not compatible:
            logger.warning("Claude CLI version %r is not supported", text or output.strip())
        self.cli_version_checked.emit(text, compatible)

    @Slot(QProcess.ProcessError)
    def _on_version_error(self, error: QProcess.ProcessError):
        if error != QProcess.ProcessError.FailedToStart or self._version_process is None:
            return
        self._finish_version_check()
        self.session_error.emit(ProcessErrorKind.EXECUTABLE_MISSING.value, MISSING_CLI_MESSAGE)
        self.cli_version_checked.emit("", False)

    @Slot()
    def _on_version_timeout(self):
        proc = self._version_process
        if proc is None:
            return
        if self._version_killed:
            self._finish_version_check()
            self.cli_version_checked.emit("", False)
            return
        logger.warning("claude --version timed out")
        proc.kill()
        self._version_killed = True
        self._version_timer.start(KILL_WAIT_MS)

    def _finish_version_check(self):
        proc, self._version_process = self._version_process, None
        if proc is None:
            return
        self._version_timer.stop()
        _disconnect(proc.finished, self._on_version_finished)
        _disconnect(proc.errorOccurred, self._on_version_error)
        proc.deleteLater()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    @Slot()
    def dispose_diagnostic(self):
        """Drop the in-flight diagnostic future without resolving it."""
        global _diagnostic_future
        future, self._diag_future = self._diag_future, None
        if future is not None and _diagnostic_future is future:
            _diagnostic_future = None
        proc = self._diag_process
        if proc is None:
            return
        self._diag_timer.stop()
        if proc.state() == QProcess.ProcessState.NotRunning:
            self._finish_diagnostic(None)
            return
        self._diag_timed_out = True
        proc.terminate()
        self._diag_kill_timer.start(self._kill_grace_ms)

    @Slot()
    def dispose(self):
        if self._disposed:
            return
        self._disposed = True
        self.stop_session()
        self.dispose_diagnostic()
        if self._version_process is not None:
            self._version_process.kill()
            self._finish_version_check()
