"""TAR command syntax and usage validator."""

import logging
import re

from .models import (
    ASSERT_COMMANDS,
    Command,
    CommandType,
    Document,
    FileType,
    RuleSet,
    SERVER_CALL_COMMANDS,
    Severity,
    ValidationIssue,
)

logger = logging.getLogger(__name__)

COMMANDS_REQUIRING_INTO = frozenset({CommandType.GET, CommandType.QUERY})
COMMANDS_NOT_IN_UTILS = ASSERT_COMMANDS
SUITE_COMMANDS = frozenset({CommandType.CALL, CommandType.CONNECT, CommandType.EVAL, CommandType.PRINT})
COLLECTION_COMMANDS = frozenset({CommandType.CALL})
CALL_EXTENSIONS = (".mkd", ".md")

RULES = RuleSet(
    name="command-syntax",
    enabled=True,
    severity=Severity.ERROR,
    options={
        "validate_server_calls": True,
        "validate_assert_placement": True,
        "commands_requiring_into": tuple(sorted(c.value for c in COMMANDS_REQUIRING_INTO)),
        "call_extensions": CALL_EXTENSIONS,
    },
)

_URL_CREDENTIALS_RE = re.compile(r":[^@/]+@")
_SENSITIVE_QUERY_RE = re.compile(r"[?&](password|secret|token|key|apikey)=", re.IGNORECASE)
_CONNECT_RE = re.compile(r"^Connect\s+\w+(?::\{?\$?[\w.]+\}?)?(\s+When\s+.+)?$", re.IGNORECASE)


def get_rules() -> RuleSet:
    return RULES


def has_credentials_in_url(url: str) -> bool:
    """True for ``user:pass@host`` URLs or sensitive query parameters."""
    return bool(_URL_CREDENTIALS_RE.search(url) or _SENSITIVE_QUERY_RE.search(url))


def validate_command(command: Command, file_type) -> list[ValidationIssue]:
    issues = []
    name = command.type.value

    if command.type in COMMANDS_REQUIRING_INTO and not command.into_var:
        issues.append(ValidationIssue(
            code="CMD001",
            message=f"{name} command should have an 'Into' clause to store the result.",
            severity=Severity.WARNING,
            line=command.line,
            suggestion="Add 'Into variableName' at the end of the command.",
        ))

    if command.type in SERVER_CALL_COMMANDS and not command.target:
        issues.append(ValidationIssue(
            code="CMD002",
            message=f"{name} command is missing a target URL/path.",
            severity=Severity.ERROR,
            line=command.line,
            suggestion=f"Add the service URL after {name}. Example: {name} ServiceName.svc/EntitySet",
        ))

    if command.type in COMMANDS_NOT_IN_UTILS and file_type == FileType.TEST_UTIL:
        issues.append(ValidationIssue(
            code="CMD003",
            message=f"{name} commands should not be used in Test Util files.",
            severity=Severity.ERROR,
            line=command.line,
            suggestion="Move Assert commands to Test Case files. Test Utils should only prepare data "
                       "and return results via Output.",
        ))

    if command.type == CommandType.OUTPUT and file_type and file_type != FileType.TEST_UTIL:
        issues.append(ValidationIssue(
            code="CMD004",
            message=f"Output command is typically used in Test Util files, not in {file_type.value}.",
            severity=Severity.INFO,
            line=command.line,
        ))

    if command.type == CommandType.CALL and command.target \
            and not command.target.endswith(CALL_EXTENSIONS):
        issues.append(ValidationIssue(
            code="CMD005",
            message="Call command target should be a .mkd or .md file.",
            severity=Severity.WARNING,
            line=command.line,
            suggestion="Ensure the called file has .mkd or .md extension.",
        ))

    if command.type == CommandType.EVAL and not command.into_var:
        issues.append(ValidationIssue(
            code="CMD006",
            message="Eval command must have an 'Into' clause to store the result.",
            severity=Severity.ERROR,
            line=command.line,
            suggestion="Add 'Into variableName' to store the evaluated result.",
        ))

    if command.target and has_credentials_in_url(command.target):
        issues.append(ValidationIssue(
            code="CMD007",
            message="Potential credentials detected in URL. Use environment variables instead.",
            severity=Severity.WARNING,
            line=command.line,
            suggestion="Use {$globalconfig.password} or similar for sensitive values.",
        ))

    if command.type == CommandType.CONNECT:
        text = command.text.strip()
        if text.lower() != "connect" and not _CONNECT_RE.match(text):
            issues.append(ValidationIssue(
                code="CMD008",
                message="Invalid Connect command format.",
                severity=Severity.WARNING,
                line=command.line,
                suggestion="Use: Connect, Connect username, or Connect username:{$globalconfig.password}",
            ))

    return issues


def validate_file_type_rules(doc: Document) -> list[ValidationIssue]:
    file_type = doc.file_type
    types = {c.type for c in doc.commands}
    has_asserts = bool(types & ASSERT_COMMANDS)

    if file_type == FileType.TEST_DATA and has_asserts:
        return [ValidationIssue(
            code="FILE001",
            message="Test Data files should not contain Assert commands.",
            severity=Severity.ERROR,
            suggestion="Test Data is for setting up data, not for assertions. Move asserts to Test Case.",
        )]
    if file_type == FileType.TEST_SUITE and types - SUITE_COMMANDS:
        return [ValidationIssue(
            code="FILE002",
            message="Test Suite files should primarily use Call commands to execute Test Cases.",
            severity=Severity.WARNING,
            suggestion="A Test Suite orchestrates Test Cases. Server calls should be in individual Test Cases.",
        )]
    if file_type == FileType.TEST_COLLECTION and types - COLLECTION_COMMANDS:
        return [ValidationIssue(
            code="FILE003",
            message="Test Collection files should only use Call commands to execute Test Suites.",
            severity=Severity.WARNING,
            suggestion="A Test Collection orchestrates Test Suites. All other logic should be in lower-level files.",
        )]
    if file_type == FileType.TEST_CASE and not has_asserts:
        return [ValidationIssue(
            code="FILE004",
            message="Test Case files should contain at least one Assert command.",
            severity=Severity.WARNING,
            suggestion="Add Assert commands to verify the expected outcomes of your test.",
        )]
    return []


def validate(doc: Document) -> list[ValidationIssue]:
    issues = []
    for command in doc.commands:
        issues.extend(validate_command(command, doc.file_type))
    issues.extend(validate_file_type_rules(doc))
    logger.debug(f"Command validation found {len(issues)} issues")
    return issues
