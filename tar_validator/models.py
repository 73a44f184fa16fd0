"""
Data models for TAR documents, validation issues and test execution results.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class FileType(str, Enum):
    """TAR file type declared in the frontmatter."""
    TEST_DATA = "Test Data"
    TEST_UTIL = "Test Util"
    TEST_CASE = "Test Case"
    TEST_SUITE = "Test Suite"
    TEST_COLLECTION = "Test Collection"


class Mode(str, Enum):
    """Execution mode for Test Case, Test Suite and Test Collection files."""
    STANDALONE = "Standalone"
    DEPENDENT = "Dependent"


class SectionType(str, Enum):
    ARRANGE = "arrange"
    ACT = "act"
    ASSERT = "assert"
    OTHER = "other"


class CommandType(str, Enum):
    """TAR command keywords."""
    # Server calls
    GET = "Get"
    POST = "Post"
    CREATE = "Create"
    MODIFY = "Modify"
    PATCH = "Patch"
    DELETE = "Delete"
    QUERY = "Query"
    BATCH = "Batch"
    ACTION = "Action"
    MODIFY_BLOB = "ModifyBlob"
    PATCH_BLOB = "PatchBlob"
    MODIFY_CLOB = "ModifyClob"
    # Variable handling
    EVAL = "Eval"
    APPLY_JSON = "ApplyJson"
    COPY_JSON = "CopyJson"
    REMOVE_JSON = "RemoveJson"
    ASSERT_JSON = "AssertJson"
    ASSERT = "Assert"
    PRINT = "Print"
    # Script calls
    CALL = "Call"
    OUTPUT = "Output"
    EXECUTE_CSV = "ExecuteCSV"
    ITERATE_ARRAY = "IterateArray"
    # Other
    DELAY = "Delay"
    REQUIRE_MIN_VERSION = "RequireMinVersion"
    CONNECT = "Connect"


SERVER_CALL_COMMANDS = frozenset({
    CommandType.GET, CommandType.POST, CommandType.CREATE, CommandType.MODIFY,
    CommandType.PATCH, CommandType.DELETE, CommandType.QUERY, CommandType.BATCH,
    CommandType.ACTION, CommandType.MODIFY_BLOB, CommandType.PATCH_BLOB,
    CommandType.MODIFY_CLOB,
})

ASSERT_COMMANDS = frozenset({CommandType.ASSERT, CommandType.ASSERT_JSON})

# Commands that carry a target URL or script path
TARGETED_COMMANDS = SERVER_CALL_COMMANDS | {CommandType.CALL}


class PatternType(str, Enum):
    """Substitution pattern kind, selected by the prefix character."""
    UTIL_REFERENCE = "utilReference"        # {#...} single quoted
    DATA_SUBSTITUTION = "dataSubstitution"  # {%...} double quoted
    ENV_VARIABLE = "envVariable"            # {$...} unquoted
    UNKNOWN = "unknown"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ErrorType(str, Enum):
    """Kinds of errors found in interpreter output."""
    SERVER_CALL_FAILED = "server_call_failed"
    ASSERT_FAILED = "assert_failed"
    EXCEPTION = "exception"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"


class ReportStatus(str, Enum):
    PASSED = "Passed"
    FAILED = "Failed"
    ERROR = "Error"


def _drop_none(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}


# ---------------------------------------------------------------------------
# Static analysis models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Metadata:
    """Frontmatter metadata.

    The known fields keep their raw YAML values so that the metadata validator
    can report missing or mistyped entries. Unknown keys land in ``extra``.
    """
    type: Any = None
    owner: Any = None
    mode: Any = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Metadata":
        known = {"type", "owner", "mode"}
        extra = {str(k): v for k, v in data.items() if k not in known}
        return cls(
            type=data.get("type"),
            owner=data.get("owner"),
            mode=data.get("mode"),
            extra=MappingProxyType(extra),
        )

    def to_dict(self) -> dict:
        return {"type": self.type, "owner": self.owner, "mode": self.mode, **self.extra}


@dataclass
class HttpOperation:
    """A server call found in a section's text."""
    method: str
    url: str
    line: int

    def to_dict(self) -> dict:
        return {"method": self.method, "url": self.url, "line": self.line}


@dataclass
class Section:
    """A heading-delimited part of the document body."""
    type: SectionType
    heading: str
    content: str
    line_start: int
    line_end: int
    operations: list[HttpOperation] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "heading": self.heading,
            "line_start": self.line_start,
            "line_end": self.line_end,
            "operations": [op.to_dict() for op in self.operations],
        }


@dataclass
class Command:
    """A TAR command parsed from a script block."""
    type: CommandType
    text: str
    line: int
    target: Optional[str] = None
    into_var: Optional[str] = None
    using_var: Optional[str] = None
    when_condition: Optional[str] = None
    has_catch_error: bool = False
    has_expect_fail: bool = False
    json_body: Optional[str] = None

    def to_dict(self) -> dict:
        return _drop_none({
            "type": self.type.value,
            "text": self.text,
            "line": self.line,
            "target": self.target,
            "into_var": self.into_var,
            "using_var": self.using_var,
            "when_condition": self.when_condition,
            "has_catch_error": self.has_catch_error,
            "has_expect_fail": self.has_expect_fail,
            "json_body": self.json_body,
        })


@dataclass
class VariableRef:
    name: str
    line: int
    is_definition: bool
    context: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "line": self.line,
            "is_definition": self.is_definition,
            "context": self.context,
        }


@dataclass
class PatternRef:
    """A substitution pattern occurrence.

    ``problem`` is None for valid patterns, otherwise "syntax", "empty" or
    "unclosed".
    """
    pattern: str
    type: PatternType
    identifier: str
    line: int
    valid: bool
    problem: Optional[str] = None

    def to_dict(self) -> dict:
        return _drop_none({
            "pattern": self.pattern,
            "type": self.type.value,
            "identifier": self.identifier,
            "line": self.line,
            "valid": self.valid,
            "problem": self.problem,
        })


@dataclass
class Document:
    """Parsed TAR document."""
    metadata: Optional[Metadata]
    file_type: Optional[FileType]
    sections: list[Section] = field(default_factory=list)
    variables: list[VariableRef] = field(default_factory=list)
    patterns: list[PatternRef] = field(default_factory=list)
    commands: list[Command] = field(default_factory=list)
    raw: str = ""


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    severity: Severity
    line: Optional[int] = None
    suggestion: Optional[str] = None
    context: Optional[str] = None

    def to_dict(self) -> dict:
        return _drop_none({
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "line": self.line,
            "suggestion": self.suggestion,
            "context": self.context,
        })


@dataclass
class ValidationResult:
    """Merged outcome of all validators for one document."""
    file_type: Optional[FileType]
    issues: list[ValidationIssue]
    commands_found: int = 0
    variables_found: int = 0
    patterns_found: int = 0
    sections_found: int = 0

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        counts = {s: 0 for s in Severity}
        for issue in self.issues:
            counts[issue.severity] += 1
        return {
            "valid": self.valid,
            "file_type": self.file_type.value if self.file_type else "Unknown",
            "issues": [i.to_dict() for i in self.issues],
            "summary": {
                "errors": counts[Severity.ERROR],
                "warnings": counts[Severity.WARNING],
                "info": counts[Severity.INFO],
            },
            "metadata": {
                "commands_found": self.commands_found,
                "variables_found": self.variables_found,
                "patterns_found": self.patterns_found,
                "sections_found": self.sections_found,
            },
        }


@dataclass(frozen=True)
class RuleSet:
    """Immutable description of a validator's rule configuration."""
    name: str
    enabled: bool
    severity: Severity
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    def to_dict(self) -> dict:
        options = {}
        for key, value in self.options.items():
            if isinstance(value, (frozenset, set, tuple)):
                value = [v.value if isinstance(v, Enum) else v for v in value]
            options[key] = value
        return {
            "name": self.name,
            "enabled": self.enabled,
            "severity": self.severity.value,
            "options": options,
        }


# ---------------------------------------------------------------------------
# Execution models
# ---------------------------------------------------------------------------

@dataclass
class CommandResult:
    status_code: int
    status_text: str


@dataclass
class TestCommand:
    """A command executed by the interpreter, flattened from the trace."""
    __test__ = False

    timestamp: str
    command: str
    full_command: str
    level: int
    result: Optional[CommandResult] = None

    def to_dict(self) -> dict:
        data = {
            "timestamp": self.timestamp,
            "command": self.command,
            "full_command": self.full_command,
            "level": self.level,
        }
        if self.result:
            data["result"] = {
                "status_code": self.result.status_code,
                "status_text": self.result.status_text,
            }
        return data


@dataclass
class ServerCall:
    """Per-endpoint timing statistics reported by the interpreter."""
    url: str
    count: int
    avg_ms: float
    max_ms: float
    min_ms: float

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "count": self.count,
            "avg_ms": self.avg_ms,
            "max_ms": self.max_ms,
            "min_ms": self.min_ms,
        }


@dataclass
class TestReport:
    """Scalar summary from the interpreter's Test Report block."""
    __test__ = False

    test_name: str = "Unknown"
    status: ReportStatus = ReportStatus.ERROR
    time_seconds: float = 0.0
    file_path: str = ""
    test_type: Optional[str] = None
    server_calls: int = 0
    failed_server_calls: int = 0
    asserts: int = 0
    failed_asserts: int = 0
    exceptions: int = 0

    def to_dict(self) -> dict:
        return {
            "test_name": self.test_name,
            "status": self.status.value,
            "time_seconds": self.time_seconds,
            "file_path": self.file_path,
            "test_type": self.test_type,
            "server_calls": self.server_calls,
            "failed_server_calls": self.failed_server_calls,
            "asserts": self.asserts,
            "failed_asserts": self.failed_asserts,
            "exceptions": self.exceptions,
        }


@dataclass
class TestError:
    __test__ = False

    type: ErrorType
    message: str
    location: Optional[str] = None
    status_code: Optional[int] = None
    suggestion: Optional[str] = None

    def to_dict(self) -> dict:
        return _drop_none({
            "type": self.type.value,
            "message": self.message,
            "location": self.location,
            "status_code": self.status_code,
            "suggestion": self.suggestion,
        })


@dataclass
class ExecutionResult:
    success: bool
    report: TestReport
    commands: list[TestCommand] = field(default_factory=list)
    server_call_stats: list[ServerCall] = field(default_factory=list)
    raw_output: str = ""
    errors: list[TestError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error_message: Optional[str] = None

    def to_dict(self, include_raw: bool = False) -> dict:
        data = {
            "success": self.success,
            "report": self.report.to_dict(),
            "commands": [c.to_dict() for c in self.commands],
            "server_call_stats": [s.to_dict() for s in self.server_call_stats],
            "errors": [e.to_dict() for e in self.errors],
            "warnings": list(self.warnings),
        }
        if self.error_message:
            data["error_message"] = self.error_message
        if include_raw:
            data["raw_output"] = self.raw_output
        return data


@dataclass
class AnalysisIssue:
    severity: Severity
    description: str
    suggestion: Optional[str] = None

    def to_dict(self) -> dict:
        return _drop_none({
            "severity": self.severity.value,
            "description": self.description,
            "suggestion": self.suggestion,
        })


@dataclass
class PerformanceAnalysis:
    total_time: float
    slowest_calls: list[ServerCall] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_time": self.total_time,
            "slowest_calls": [c.to_dict() for c in self.slowest_calls],
            "recommendations": list(self.recommendations),
        }


@dataclass
class CoverageInfo:
    server_calls_made: int = 0
    unique_endpoints: int = 0
    asserts_executed: int = 0

    def to_dict(self) -> dict:
        return {
            "server_calls_made": self.server_calls_made,
            "unique_endpoints": self.unique_endpoints,
            "asserts_executed": self.asserts_executed,
        }


@dataclass
class Analysis:
    summary: str
    issues: list[AnalysisIssue]
    performance: PerformanceAnalysis
    coverage: CoverageInfo

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "issues": [i.to_dict() for i in self.issues],
            "performance": self.performance.to_dict(),
            "coverage": self.coverage.to_dict(),
        }
