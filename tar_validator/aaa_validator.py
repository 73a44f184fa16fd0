"""
Arrange-Act-Assert structure validator.

AAA structure only applies to Test Case documents. Test Data, Test Util,
Test Suite and Test Collection files are orchestration or setup files and get
no AAA issues at all.
"""

import logging
import re

from .models import Document, FileType, RuleSet, SectionType, Severity, ValidationIssue

logger = logging.getLogger(__name__)

SECTION_ORDER = [SectionType.ARRANGE, SectionType.ACT, SectionType.ASSERT]

RULES = RuleSet(
    name="aaa-structure",
    enabled=True,
    severity=Severity.ERROR,
    options={
        "applies_to_types": (FileType.TEST_CASE.value,),
        "required_sections": (SectionType.ACT.value, SectionType.ASSERT.value),
        "optional_sections": (SectionType.ARRANGE.value,),
        "enforce_order": True,
    },
)

_SERVER_COMMAND_RE = re.compile(
    r"\b(Get|Post|Create|Modify|Patch|Delete|Query|Batch|Action|ModifyBlob|PatchBlob|ModifyClob|Call)\b",
    re.IGNORECASE,
)
_ASSERT_COMMAND_RE = re.compile(r"\b(Assert|AssertJson)\b", re.IGNORECASE)


def get_rules() -> RuleSet:
    return RULES


def _body(section) -> str:
    """Section content without its heading line."""
    if not section.heading:
        return section.content
    return section.content.partition("\n")[2]


def validate(doc: Document) -> list[ValidationIssue]:
    if doc.file_type != FileType.TEST_CASE:
        return []

    issues = []
    by_type = {t: [s for s in doc.sections if s.type == t] for t in SECTION_ORDER}

    if not by_type[SectionType.ACT]:
        issues.append(ValidationIssue(
            code="AAA001",
            message="Test Case is missing an Act section.",
            severity=Severity.ERROR,
            suggestion='Add a markdown section with heading containing "Act", "When", or "Execute".\n'
                       "Example:\n## Act\n1. Call the API endpoint.",
        ))
    if not by_type[SectionType.ASSERT]:
        issues.append(ValidationIssue(
            code="AAA002",
            message="Test Case is missing an Assert section.",
            severity=Severity.ERROR,
            suggestion='Add a markdown section with heading containing "Assert", "Then", "Verify", or "Expect".\n'
                       "Example:\n## Assert\n1. Verify the response status is 200.",
        ))
    if not by_type[SectionType.ARRANGE]:
        issues.append(ValidationIssue(
            code="AAA003",
            message="Test Case does not have an Arrange section. Consider adding one for clarity.",
            severity=Severity.INFO,
            suggestion='Add a markdown section with heading containing "Arrange", "Given", or "Setup".\n'
                       "Example:\n## Arrange\n1. Set up test data.",
        ))

    highest = -1
    for section in doc.sections:
        if section.type not in SECTION_ORDER:
            continue
        index = SECTION_ORDER.index(section.type)
        if index < highest:
            issues.append(ValidationIssue(
                code="AAA004",
                message=f'Section order issue: "{section.heading}" ({section.type.value}) '
                        f"appears after a later section in the AAA pattern.",
                severity=Severity.WARNING,
                line=section.line_start,
                suggestion="Reorder sections to follow: Arrange → Act → Assert",
            ))
        highest = max(highest, index)

    for section in by_type[SectionType.ACT]:
        if not _SERVER_COMMAND_RE.search(_body(section)):
            issues.append(ValidationIssue(
                code="AAA005",
                message="Act section does not appear to contain any server call commands "
                        "(Get, Post, Create, Call, etc.).",
                severity=Severity.WARNING,
                line=section.line_start,
                suggestion="Add server commands in the code block within the Act section.",
            ))

    for section in by_type[SectionType.ASSERT]:
        if not _ASSERT_COMMAND_RE.search(_body(section)):
            issues.append(ValidationIssue(
                code="AAA006",
                message="Assert section does not contain any Assert commands.",
                severity=Severity.WARNING,
                line=section.line_start,
                suggestion="Add Assert commands to verify expected outcomes.\n"
                           "Example: Assert {$response.status} == 200",
            ))

    logger.debug(f"AAA validation found {len(issues)} issues")
    return issues
