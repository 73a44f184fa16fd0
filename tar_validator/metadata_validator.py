"""Frontmatter metadata validator."""

import logging

from .models import Document, FileType, Mode, RuleSet, Severity, ValidationIssue

logger = logging.getLogger(__name__)

VALID_FILE_TYPES = [t.value for t in FileType]
VALID_MODES = [m.value for m in Mode]
TYPES_REQUIRING_MODE = [
    FileType.TEST_CASE.value, FileType.TEST_SUITE.value, FileType.TEST_COLLECTION.value,
]

RULES = RuleSet(
    name="metadata",
    enabled=True,
    severity=Severity.ERROR,
    options={
        "valid_file_types": tuple(VALID_FILE_TYPES),
        "valid_modes": tuple(VALID_MODES),
        "types_requiring_mode": tuple(TYPES_REQUIRING_MODE),
    },
)

MISSING_METADATA_TEMPLATE = f"""Add YAML frontmatter at the beginning of the file:
---
type: Test Case
owner: YourTeamName
mode: Standalone
---

Valid types: {', '.join(VALID_FILE_TYPES)}
Valid modes: {', '.join(VALID_MODES)} (required for Test Case, Test Suite, Test Collection)"""


def get_rules() -> RuleSet:
    return RULES


def _issue(code: str, message: str, severity: Severity = Severity.ERROR, suggestion: str = None):
    return ValidationIssue(code=code, message=message, severity=severity, line=1, suggestion=suggestion)


def validate(doc: Document) -> list[ValidationIssue]:
    """Check required frontmatter fields, enum values and the conditional 'mode'."""
    metadata = doc.metadata
    if metadata is None:
        return [_issue(
            "META001",
            "Missing metadata block (frontmatter). TAR files require YAML frontmatter.",
            suggestion=MISSING_METADATA_TEMPLATE,
        )]

    issues = []
    types = ", ".join(VALID_FILE_TYPES)
    modes = ", ".join(VALID_MODES)

    if not metadata.type:
        issues.append(_issue(
            "META002",
            "Missing required metadata field: 'type'",
            suggestion=f"Add 'type' field. Valid values: {types}",
        ))
    elif metadata.type not in VALID_FILE_TYPES:
        issues.append(_issue(
            "META003",
            f"Invalid file type: '{metadata.type}'. Must be one of: {types}",
            suggestion=f"Use one of: {types}",
        ))

    if not metadata.owner:
        issues.append(_issue(
            "META004",
            "Missing required metadata field: 'owner'",
            suggestion="Add 'owner' field with the team or component name (e.g., 'Manufacturing', 'Finance')",
        ))
    elif not isinstance(metadata.owner, str) or len(metadata.owner.strip()) < 2:
        issues.append(_issue(
            "META005",
            "'owner' field must be a non-empty string (minimum 2 characters)",
            suggestion="Provide a valid owner/team name",
        ))

    requires_mode = metadata.type in TYPES_REQUIRING_MODE
    if requires_mode:
        if not metadata.mode:
            issues.append(_issue(
                "META006",
                f"Missing required 'mode' field for type '{metadata.type}'",
                suggestion=f"Add 'mode' field. Valid values: {modes}",
            ))
        elif metadata.mode not in VALID_MODES:
            issues.append(_issue(
                "META007",
                f"Invalid mode: '{metadata.mode}'. Must be one of: {modes}",
                suggestion=f"Use one of: {modes}",
            ))
    elif metadata.mode and metadata.type:
        issues.append(_issue(
            "META008",
            f"'mode' field is not required for type '{metadata.type}'",
            severity=Severity.INFO,
            suggestion=f"The 'mode' field is only needed for: {', '.join(TYPES_REQUIRING_MODE)}",
        ))

    logger.debug(f"Metadata validation found {len(issues)} issues")
    return issues


def requires_aaa_structure(doc: Document) -> bool:
    return doc.file_type == FileType.TEST_CASE


def can_have_asserts(doc: Document) -> bool:
    return doc.file_type == FileType.TEST_CASE
