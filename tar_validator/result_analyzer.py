"""Analysis of test execution results: diagnostics, performance, coverage and fix reports."""

import logging

from .models import (
    Analysis,
    AnalysisIssue,
    CoverageInfo,
    ErrorType,
    ExecutionResult,
    PerformanceAnalysis,
    Severity,
)

logger = logging.getLogger(__name__)

FAILURE_RATE_THRESHOLD = 0.1
LONG_TEST_SECONDS = 60
SLOW_CALL_MS = 5000
SLOW_ACTION_MS = 10000
BATCHING_COUNT = 5
SLOWEST_CALLS_LIMIT = 5

# Report headings for tests that are not expected to assert anything
NON_ASSERTING_TEST_TYPES = {"TestData", "TestUtil"}

# (substrings in lowercased error messages and status codes, severity, description, suggestion)
ERROR_HINTS = [
    (("not found", "404"), Severity.INFO,
     "Some resources were not found (404 errors)",
     "Verify that test data dependencies are created before this test runs."),
    (("unauthorized", "401"), Severity.ERROR,
     "Authentication errors detected",
     "Check username/password credentials and user permissions."),
    (("validation", "422"), Severity.ERROR,
     "Data validation errors detected",
     "Review the input data against business rules."),
]

FIX_PLAYBOOKS = {
    ErrorType.SERVER_CALL_FAILED: ("Fixing Server Call Failures", [
        "Check that required test data exists",
        "Verify the API endpoint URL is correct",
        "Ensure request payload matches expected format",
        "Check user permissions for the operation",
    ]),
    ErrorType.ASSERT_FAILED: ("Fixing Assert Failures", [
        "Verify expected values are correct",
        "Check if the API response format changed",
        "Ensure variable names match (case-sensitive)",
    ]),
}


def summarize(result: ExecutionResult) -> str:
    report = result.report
    if result.success:
        return (f"Test {report.test_name} passed successfully in {report.time_seconds:.2f}s "
                f"with {report.server_calls} server calls.")

    problems = []
    if report.failed_server_calls > 0:
        problems.append(f"{report.failed_server_calls} failed server calls")
    if report.failed_asserts > 0:
        problems.append(f"{report.failed_asserts} failed assertions")
    if report.exceptions > 0:
        problems.append(f"{report.exceptions} exceptions")
    if not problems:
        problems.append(f"status {report.status.value}")
    return f"Test {report.test_name} FAILED: {', '.join(problems)}."


def _expects_asserts(result: ExecutionResult) -> bool:
    report = result.report
    if report.test_type:
        return report.test_type not in NON_ASSERTING_TEST_TYPES
    name = report.test_name.lower()
    return "test" in name and "data" not in name and "util" not in name


def identify_issues(result: ExecutionResult) -> list[AnalysisIssue]:
    issues = [
        AnalysisIssue(severity=Severity.ERROR, description=e.message, suggestion=e.suggestion)
        for e in result.errors
    ]
    issues.extend(AnalysisIssue(severity=Severity.WARNING, description=w) for w in result.warnings)

    report = result.report
    if report.asserts == 0 and _expects_asserts(result):
        issues.append(AnalysisIssue(
            severity=Severity.WARNING,
            description="Test case has no assertions",
            suggestion="Add Assert or AssertJson commands to verify expected outcomes.",
        ))

    if report.server_calls > 0:
        failure_rate = report.failed_server_calls / report.server_calls
        if failure_rate > FAILURE_RATE_THRESHOLD:
            issues.append(AnalysisIssue(
                severity=Severity.ERROR,
                description=f"High server call failure rate: {failure_rate * 100:.1f}%",
                suggestion="Review the failed calls and check data dependencies.",
            ))

    messages = [f"{e.message} {e.status_code or ''}".lower() for e in result.errors]
    for needles, severity, description, suggestion in ERROR_HINTS:
        if any(needle in m for m in messages for needle in needles):
            issues.append(AnalysisIssue(severity=severity, description=description, suggestion=suggestion))

    return issues


def analyze_performance(result: ExecutionResult) -> PerformanceAnalysis:
    stats = result.server_call_stats
    slowest = sorted(stats, key=lambda c: c.avg_ms, reverse=True)[:SLOWEST_CALLS_LIMIT]
    recommendations = []

    if result.report.time_seconds > LONG_TEST_SECONDS:
        recommendations.append("Consider splitting this test into smaller tests for faster feedback.")

    very_slow = [c for c in stats if c.avg_ms > SLOW_CALL_MS]
    if very_slow:
        recommendations.append(
            f"{len(very_slow)} API calls take more than {SLOW_CALL_MS}ms. Consider optimizing or caching."
        )

    if any(c.count > BATCHING_COUNT for c in stats):
        recommendations.append("Some endpoints are called multiple times. Consider batching requests.")

    actions = [c for c in stats if "/Action" in c.url or "Action_" in c.url]
    if any(c.avg_ms > SLOW_ACTION_MS for c in actions):
        recommendations.append(
            "Action operations are slow. This is often expected for complex business operations."
        )

    return PerformanceAnalysis(
        total_time=result.report.time_seconds,
        slowest_calls=slowest,
        recommendations=recommendations,
    )


def analyze_coverage(result: ExecutionResult) -> CoverageInfo:
    return CoverageInfo(
        server_calls_made=result.report.server_calls,
        unique_endpoints=len(result.server_call_stats),
        asserts_executed=result.report.asserts,
    )


def analyze(result: ExecutionResult) -> Analysis:
    """Derive summary, issues, performance and coverage from an execution result."""
    analysis = Analysis(
        summary=summarize(result),
        issues=identify_issues(result),
        performance=analyze_performance(result),
        coverage=analyze_coverage(result),
    )
    logger.debug(f"Analysis for {result.report.test_name}: {len(analysis.issues)} issues")
    return analysis


def generate_fix_report(result: ExecutionResult) -> str:
    """Render a Markdown remediation report for a failed result."""
    if result.success:
        return "No fixes needed - test passed successfully."

    lines = [
        "# Test Fix Report",
        "",
        f"## Test: {result.report.test_name}",
        f"Status: {result.report.status.value}",
        "",
        "## Issues Found",
        "",
    ]

    for error in result.errors:
        lines.append(f"### {error.type.value.upper()}")
        lines.append(f"**Problem:** {error.message}")
        if error.location:
            lines.append(f"**Location:** {error.location}")
        if error.status_code:
            lines.append(f"**HTTP Status:** {error.status_code}")
        if error.suggestion:
            lines.append(f"**Suggested Fix:** {error.suggestion}")
        lines.append("")

    if result.warnings:
        lines.append("## Warnings")
        lines.append("")
        lines.extend(f"- {w}" for w in result.warnings)
        lines.append("")

    error_types = {e.type for e in result.errors}
    for error_type, (title, steps) in FIX_PLAYBOOKS.items():
        if error_type in error_types:
            lines.append(f"## {title}")
            lines.append("")
            lines.extend(f"{i}. {step}" for i, step in enumerate(steps, start=1))
            lines.append("")

    return "\n".join(lines)
