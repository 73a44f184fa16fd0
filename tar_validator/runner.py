"""
Runs TAR tests with the ScriptARest command line interpreter.

The interpreter is started directly (no shell) with the arguments::

    serverurl=<url> username=<user> password=<pass> fileToRead=<file name>

from the directory containing the test file. Its console output is handed to
the output parser. Every failure to run (missing files, spawn errors,
timeouts) comes back as an ExecutionResult with status Error, so callers only
handle one result shape.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from . import output_parser
from .config import DEFAULT_TIMEOUT_SECONDS
from .models import ErrorType, ExecutionResult, ReportStatus, TestError, TestReport
from .output_parser import STDERR_MARKER

logger = logging.getLogger(__name__)

_PASSWORD_ARG_RE = re.compile(r"^(password=).*$", re.IGNORECASE)
_URL_CREDENTIALS_RE = re.compile(r"(://[^/\s:@]+:)[^/\s@]+@")

# Seconds to wait after SIGTERM before killing the interpreter
TERMINATE_GRACE_SECONDS = 5.0


class RunnerError(Exception):
    """ScriptARest could not be run or produced no usable output."""


class RunnerTimeoutError(RunnerError):
    """ScriptARest did not finish within the timeout."""


@dataclass
class RunnerConfig:
    script_a_rest_path: str = ""
    server_url: str = ""
    username: str = ""
    password: str = ""
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def to_dict(self) -> dict:
        """Configuration without the password."""
        return {
            "script_a_rest_path": self.script_a_rest_path,
            "server_url": self.server_url,
            "username": self.username,
            "has_password": bool(self.password),
            "timeout_seconds": self.timeout_seconds,
        }


@dataclass
class RunOptions:
    file_path: str
    server_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    additional_args: list[str] = field(default_factory=list)
    timeout_seconds: Optional[float] = None


def mask_args(args: list[str]) -> list[str]:
    """Hide password arguments and user:pass@ credentials in URLs."""
    return [_URL_CREDENTIALS_RE.sub(r"\1****@", _PASSWORD_ARG_RE.sub(r"\1****", arg)) for arg in args]


async def _stop_process(process, grace: float):
    """Terminate the process, killing it if it outlives the grace period."""
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=grace)
    except asyncio.TimeoutError:
        logger.warning(f"ScriptARest ignored SIGTERM for {grace}s, killing")
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()


def create_error_result(message: str, file_path: str, timed_out: bool = False) -> ExecutionResult:
    """An ExecutionResult describing a run that never produced test output."""
    error = TestError(type=ErrorType.EXCEPTION, message=message)
    if timed_out:
        error = TestError(
            type=ErrorType.TIMEOUT,
            message=message,
            suggestion="Increase the timeout or check if the server is responding slowly.",
        )
    return ExecutionResult(
        success=False,
        report=TestReport(
            test_name=Path(file_path).name,
            status=ReportStatus.ERROR,
            file_path=file_path,
            exceptions=1,
        ),
        errors=[error],
        error_message=message,
    )


class SarRunner:
    """Runs TAR test files with ScriptARest."""

    def __init__(self, config: RunnerConfig):
        self.config = config

    def build_args(self, options: RunOptions, file_name: str) -> list[str]:
        server_url = options.server_url if options.server_url is not None else self.config.server_url
        username = options.username if options.username is not None else self.config.username
        password = options.password if options.password is not None else self.config.password
        return [
            f"serverurl={server_url}",
            f"username={username}",
            f"password={password}",
            f"fileToRead={file_name}",
            *options.additional_args,
        ]

    async def run_test(self, options: RunOptions) -> ExecutionResult:
        """Run a test file and parse the interpreter output.

        Args:
            options: Test file plus optional per-run overrides

        Returns:
            ExecutionResult, an error result if the test could not be run
        """
        executable = self.config.script_a_rest_path
        if not executable or not Path(executable).exists():
            logger.error(f"ScriptARest not found at: {executable}")
            return create_error_result(f"ScriptARest.exe not found at: {executable}", options.file_path)

        test_file = Path(options.file_path).resolve()
        if not test_file.is_file():
            logger.error(f"Test file not found: {test_file}")
            return create_error_result(f"Test file not found: {test_file}", options.file_path)

        args = self.build_args(options, test_file.name)
        timeout = options.timeout_seconds or self.config.timeout_seconds or DEFAULT_TIMEOUT_SECONDS

        try:
            output = await self.execute_command(executable, args, str(test_file.parent), timeout)
        except RunnerTimeoutError as e:
            return create_error_result(str(e), options.file_path, timed_out=True)
        except RunnerError as e:
            return create_error_result(str(e), options.file_path)

        return output_parser.parse(output)

    async def execute_command(self, executable: str, args: list[str], cwd: str, timeout: float) -> str:
        """Run the interpreter and return stdout, with stderr appended after a marker.

        A non-zero exit code with output is a failed test, not a runner error.
        """
        logger.info(f"Running {executable} {' '.join(mask_args(args))} in {cwd}")
        try:
            process = await asyncio.create_subprocess_exec(
                executable, *args,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RunnerError(f"Failed to start ScriptARest: {e}") from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"ScriptARest timed out after {timeout}s, terminating")
            await _stop_process(process, TERMINATE_GRACE_SECONDS)
            raise RunnerTimeoutError(f"Test execution timed out after {timeout}s")
        except asyncio.CancelledError:
            logger.warning("Test run cancelled, killing ScriptARest")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            raise

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        logger.info(f"ScriptARest exited with code {process.returncode}")

        if process.returncode != 0 and not stdout:
            raise RunnerError(f"ScriptARest exited with code {process.returncode}: {stderr or 'No output'}")

        return stdout + (STDERR_MARKER + stderr if stderr else "")

    def validate_config(self) -> tuple[bool, list[str]]:
        errors = []
        if not self.config.script_a_rest_path:
            errors.append("ScriptARest path is not configured")
        elif not Path(self.config.script_a_rest_path).exists():
            errors.append(f"ScriptARest.exe not found at: {self.config.script_a_rest_path}")
        if not self.config.server_url:
            errors.append("Server URL is not configured")
        if not self.config.username:
            errors.append("Username is not configured")
        if not self.config.password:
            errors.append("Password is not configured")
        return not errors, errors
