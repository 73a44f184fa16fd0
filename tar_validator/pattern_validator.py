"""
Substitution pattern validator.

Pattern types, selected by the prefix character:
- {#...} single quoted substitution, {#name} becomes 'value'
- {%...} double quoted substitution, {%name} becomes "value"
- {$...} unquoted substitution, {$name} becomes value

Identifiers may use dot notation ({$object.property}), function calls
({$Today()}) and chained access ({$result.value.Items(0).Name}).
"""

import logging
import re

from .models import Document, PatternRef, RuleSet, Severity, ValidationIssue

logger = logging.getLogger(__name__)

MAX_IDENTIFIER_LENGTH = 100

RULES = RuleSet(
    name="substitution-patterns",
    enabled=True,
    severity=Severity.WARNING,
    options={
        "allow_all_cases": True,
        "validate_syntax": True,
        "max_identifier_length": MAX_IDENTIFIER_LENGTH,
    },
)

_UNCLOSED_RE = re.compile(r"\{([#%$])([^}]*)$")
_EMPTY_RE = re.compile(r"\{([#%$])\s*\}")

UNCLOSED_SUGGESTION = "Ensure all patterns have closing braces: {$variable}"
EMPTY_SUGGESTION = "Provide an identifier: {$variableName}"


def get_rules() -> RuleSet:
    return RULES


def summarize_patterns(doc: Document) -> list[dict]:
    return [
        {"pattern": p.pattern, "type": p.type.value, "valid": p.valid, "line": p.line}
        for p in doc.patterns
    ]


def _unclosed_issue(line: int, prefix: str, rest: str) -> ValidationIssue:
    return ValidationIssue(
        code="PAT002",
        message=f'Unclosed substitution pattern starting with "{{{prefix}"',
        severity=Severity.ERROR,
        line=line,
        suggestion=UNCLOSED_SUGGESTION,
        context=f"{{{prefix}{rest}",
    )


def _empty_issue(line: int, pattern: str) -> ValidationIssue:
    return ValidationIssue(
        code="PAT003",
        message=f'Empty substitution pattern: "{pattern}"',
        severity=Severity.ERROR,
        line=line,
        suggestion=EMPTY_SUGGESTION,
    )


def _scan_raw(raw: str) -> list[ValidationIssue]:
    """Line scan for unclosed and empty patterns, independent of the parser."""
    issues = []
    for line_no, line in enumerate(raw.splitlines(), start=1):
        match = _UNCLOSED_RE.search(line)
        if match:
            issues.append(_unclosed_issue(line_no, match.group(1), match.group(2)))
        for match in _EMPTY_RE.finditer(line):
            issues.append(_empty_issue(line_no, match.group(0)))
    return issues


def _style_issue(pattern: PatternRef):
    identifier = pattern.identifier
    if ".." in identifier:
        return ValidationIssue(
            code="PAT004",
            message=f'Pattern "{pattern.pattern}" contains consecutive dots',
            severity=Severity.WARNING,
            line=pattern.line,
            suggestion="Check for typos in the property path.",
        )
    if identifier.strip()[:1].isdigit():
        return ValidationIssue(
            code="PAT005",
            message=f'Pattern "{pattern.pattern}" starts with a number',
            severity=Severity.WARNING,
            line=pattern.line,
            suggestion="Variable names should start with a letter.",
        )
    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        return ValidationIssue(
            code="PAT006",
            message=f'Pattern "{pattern.pattern[:50]}..." is unusually long',
            severity=Severity.INFO,
            line=pattern.line,
            suggestion="Consider breaking down complex expressions.",
        )
    return None


def validate(doc: Document) -> list[ValidationIssue]:
    issues = []
    seen = set()

    def add(issue: ValidationIssue):
        key = (issue.code, issue.line)
        if issue.code in ("PAT002", "PAT003"):
            if key in seen:
                return
            seen.add(key)
        issues.append(issue)

    for pattern in doc.patterns:
        if pattern.problem == "unclosed":
            add(_unclosed_issue(pattern.line, pattern.pattern[1:2], pattern.identifier))
        elif pattern.problem == "empty":
            add(_empty_issue(pattern.line, pattern.pattern))
        elif not pattern.valid:
            add(ValidationIssue(
                code="PAT001",
                message=f'Invalid pattern syntax: "{pattern.pattern}"',
                severity=Severity.ERROR,
                line=pattern.line,
                suggestion="Ensure the pattern uses valid identifier characters: letters, numbers, "
                           "dots, underscores, and parentheses for function calls.",
            ))

    for issue in _scan_raw(doc.raw):
        add(issue)

    for pattern in doc.patterns:
        if pattern.valid:
            style = _style_issue(pattern)
            if style:
                add(style)

    logger.debug(f"Pattern validation found {len(issues)} issues")
    return issues
