"""
Parser for ScriptARest console output.

The interpreter prints an indented, timestamped command trace, a labeled
"Test Report" block and a trailing JSON array of per-endpoint timings::

    2026-01-20 00:39:52 Command:  Call util/CreateCompany.mkd
       2026-01-20 00:39:52 Command:  Get CompanyHandling.svc/DefaultTemplate()
       2026-01-20 00:39:53 Result (200) OK with No Reattempt

The trace is read in two steps: ``tokenize`` turns lines into level-tagged
tokens and ``build_trace_tree`` nests them with a level stack. Report fields
are each found by their own regex, so a missing field only leaves its default.
Nothing here raises for malformed output.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from .models import (
    CommandResult,
    ErrorType,
    ExecutionResult,
    ReportStatus,
    ServerCall,
    TestCommand,
    TestError,
    TestReport,
)

logger = logging.getLogger(__name__)

# Leading spaces per nesting level. Indentation that is not a multiple of
# this width is truncated by the integer division.
INDENT_WIDTH = 3

SLOW_CALL_WARNING_MS = 10000

# Separates captured stderr from stdout in runner output
STDERR_MARKER = "\n--- STDERR ---\n"

_TIMESTAMP = r"\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2}"
_COMMAND_RE = re.compile(rf"^({_TIMESTAMP})\s+Command:\s+(.+)$")
_RESULT_RE = re.compile(rf"^({_TIMESTAMP})\s+Result\s+\((\d+)\)\s+(.+)$")

_TEST_NAME_RE = re.compile(r"^\s*(TestData|TestCase|TestSuite|TestUtil|TestCollection)\s+(\S+)", re.MULTILINE)
_FILE_NAME_RE = re.compile(r"file:\s+.*[\\/]([^\\/]+)\.mkd")
_STATUS_RE = re.compile(r"^\s*(Passed|Failed)\s*$", re.MULTILINE)
_TIME_RE = re.compile(r"time:\s+([\d.]+)")
_FILE_RE = re.compile(r"file:\s+(.+\.mkd)")
_COUNTERS = {
    "server_calls": re.compile(r"Server calls:\s+(\d+)"),
    "failed_server_calls": re.compile(r"Failed server calls:\s+(\d+)"),
    "asserts": re.compile(r"Asserts:\s+(\d+)"),
    "failed_asserts": re.compile(r"Failed asserts:\s+(\d+)"),
    "exceptions": re.compile(r"Exceptions:?\s+(\d+)"),
}

# The stats array runs from the first "[{" to a "}]" that ends the output
_STATS_START_RE = re.compile(r"\[\s*\{")
_STATS_END_RE = re.compile(r"\}\s*\]\s*$")
_EXCEPTION_RE = re.compile(r"Exception:?\s+(?!0)(.+)", re.IGNORECASE)
_ASSERT_FAILED_RE = re.compile(r"Assert\s+.*(?:failed|false)", re.IGNORECASE)
_AVG_RE = re.compile(r"\"Avg\":\s*\"(\d+)\"")

STATUS_CODE_SUGGESTIONS = {
    400: "Bad request - check the request payload format and required fields.",
    401: "Unauthorized - verify username and password credentials.",
    403: "Forbidden - check user permissions for this operation.",
    404: "Not found - verify the endpoint URL and entity exists.",
    409: "Conflict - the record may already exist or have a constraint violation.",
    422: "Validation error - check the data values against business rules.",
    500: "Server error - check server logs for details.",
    503: "Service unavailable - server may be overloaded, try again later.",
}


@dataclass
class TraceToken:
    kind: str               # "command" or "result"
    level: int
    timestamp: str
    text: str
    line: int
    status_code: Optional[int] = None


@dataclass
class TraceNode:
    timestamp: str
    command: str
    full_command: str
    level: int
    result: Optional[CommandResult] = None
    children: list["TraceNode"] = field(default_factory=list)


def tokenize(raw: str) -> list[TraceToken]:
    """Turn trace lines into level-tagged tokens; other lines are skipped."""
    tokens = []
    for line_no, line in enumerate(raw.splitlines(), start=1):
        stripped = line.strip()
        if not stripped:
            continue
        level = (len(line) - len(line.lstrip())) // INDENT_WIDTH

        match = _COMMAND_RE.match(stripped)
        if match:
            tokens.append(TraceToken("command", level, match.group(1), match.group(2).strip(), line_no))
            continue
        match = _RESULT_RE.match(stripped)
        if match:
            tokens.append(TraceToken(
                "result", level, match.group(1), match.group(3).strip(), line_no,
                status_code=int(match.group(2)),
            ))
    return tokens


def build_trace_tree(tokens: list[TraceToken]) -> list[TraceNode]:
    """Nest command tokens by level.

    A command becomes a child of the nearest preceding command with a lower
    level. A result token belongs to the most recent command; a second result
    for the same command replaces the first.
    """
    roots: list[TraceNode] = []
    stack: list[TraceNode] = []
    last: Optional[TraceNode] = None

    for token in tokens:
        if token.kind == "result":
            if last is None:
                logger.debug(f"Result on line {token.line} has no preceding command")
                continue
            last.result = CommandResult(status_code=token.status_code, status_text=token.text)
            continue

        node = TraceNode(
            timestamp=token.timestamp,
            command=token.text.split()[0] if token.text.split() else token.text,
            full_command=token.text,
            level=token.level,
        )
        while stack and stack[-1].level >= node.level:
            stack.pop()
        (stack[-1].children if stack else roots).append(node)
        stack.append(node)
        last = node

    return roots


def flatten(nodes: list[TraceNode]) -> list[TestCommand]:
    """Depth-first flattening back to source order."""
    commands = []
    for node in nodes:
        commands.append(TestCommand(
            timestamp=node.timestamp,
            command=node.command,
            full_command=node.full_command,
            level=node.level,
            result=node.result,
        ))
        commands.extend(flatten(node.children))
    return commands


def parse_commands(raw: str) -> list[TestCommand]:
    return flatten(build_trace_tree(tokenize(raw)))


def _to_float(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return 0.0


def parse_report(raw: str) -> TestReport:
    report = TestReport()

    name = _TEST_NAME_RE.search(raw)
    if name:
        report.test_type = name.group(1)
        report.test_name = name.group(2)
    else:
        file_name = _FILE_NAME_RE.search(raw)
        if file_name:
            report.test_name = file_name.group(1)

    status = _STATUS_RE.search(raw)
    if status:
        report.status = ReportStatus(status.group(1))
    elif "Passed" in raw:
        report.status = ReportStatus.PASSED
    elif "Failed" in raw:
        report.status = ReportStatus.FAILED

    time_match = _TIME_RE.search(raw)
    if time_match:
        report.time_seconds = _to_float(time_match.group(1))

    file_match = _FILE_RE.search(raw)
    if file_match:
        report.file_path = file_match.group(1).strip()

    for attr, pattern in _COUNTERS.items():
        match = pattern.search(raw)
        if match:
            setattr(report, attr, int(match.group(1)))

    return report


def parse_server_call_stats(raw: str) -> list[ServerCall]:
    """Parse the JSON stats array that ends stdout; any malformed entry discards all of it."""
    stdout = raw.partition(STDERR_MARKER)[0]
    end = _STATS_END_RE.search(stdout)
    start = _STATS_START_RE.search(stdout, 0, end.start()) if end else None
    if not start:
        return []
    try:
        items = json.loads(stdout[start.start():end.end()])
        return [
            ServerCall(
                url=item["Url"],
                count=int(item["Count"]),
                avg_ms=float(item["Avg"]),
                max_ms=float(item["Max"]),
                min_ms=float(item["Min"]),
            )
            for item in items
        ]
    except (ValueError, KeyError, TypeError) as e:
        logger.debug(f"Ignoring malformed server call statistics: {e}")
        return []


def suggest_fix_for_status_code(status_code: int) -> str:
    return STATUS_CODE_SUGGESTIONS.get(
        status_code, f"HTTP {status_code} error - check the API documentation."
    )


def find_errors(raw: str, commands: list[TestCommand]) -> list[TestError]:
    errors = []

    for cmd in commands:
        if cmd.result and cmd.result.status_code >= 400:
            errors.append(TestError(
                type=ErrorType.SERVER_CALL_FAILED,
                message=f"Server call failed: {cmd.full_command}",
                location=f"{cmd.timestamp} - {cmd.command}",
                status_code=cmd.result.status_code,
                suggestion=suggest_fix_for_status_code(cmd.result.status_code),
            ))

    for match in _EXCEPTION_RE.finditer(raw):
        message = match.group(1).strip()
        # "Exceptions: 0" style counters are not exceptions
        if message and not message.isdigit():
            errors.append(TestError(
                type=ErrorType.EXCEPTION,
                message=message,
                suggestion="Check the TAR file for syntax errors or missing dependencies.",
            ))

    for match in _ASSERT_FAILED_RE.finditer(raw):
        errors.append(TestError(
            type=ErrorType.ASSERT_FAILED,
            message=match.group(0).strip(),
            suggestion="Verify the expected values in the assert statement.",
        ))

    if "timeout" in raw or "Timeout" in raw:
        errors.append(TestError(
            type=ErrorType.TIMEOUT,
            message="Test execution timed out",
            suggestion="Increase the timeout or check if the server is responding slowly.",
        ))

    if "Test Report" not in raw:
        errors.append(TestError(
            type=ErrorType.PARSE_ERROR,
            message="Output does not contain a Test Report section",
            suggestion="Check that ScriptARest ran to completion and that the output was not truncated.",
        ))

    return errors


def find_warnings(raw: str) -> list[str]:
    warnings = []
    if "deprecated" in raw or "Deprecated" in raw:
        warnings.append("Deprecated API usage detected")
    for match in _AVG_RE.finditer(raw):
        avg_ms = int(match.group(1))
        if avg_ms > SLOW_CALL_WARNING_MS:
            warnings.append(f"Slow API call detected ({avg_ms}ms average)")
    return warnings


def summarize_errors(errors: list[TestError]) -> str:
    if not errors:
        return "Unknown error"
    if len(errors) == 1:
        return errors[0].message
    return f"{len(errors)} errors found: " + "; ".join(e.message for e in errors[:3])


def parse(raw: str) -> ExecutionResult:
    """Parse raw interpreter output into an ExecutionResult."""
    commands = parse_commands(raw)
    report = parse_report(raw)
    stats = parse_server_call_stats(raw)
    errors = find_errors(raw, commands)
    warnings = find_warnings(raw)

    success = (
        report.status == ReportStatus.PASSED
        and report.failed_server_calls == 0
        and report.failed_asserts == 0
        and report.exceptions == 0
    )
    logger.debug(
        f"Parsed output for {report.test_name}: status={report.status.value}, "
        f"{len(commands)} commands, {len(errors)} errors"
    )
    return ExecutionResult(
        success=success,
        report=report,
        commands=commands,
        server_call_stats=stats,
        raw_output=raw,
        errors=errors,
        warnings=warnings,
        error_message=None if success else summarize_errors(errors),
    )
