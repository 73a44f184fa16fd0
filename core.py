#!/usr/bin/env python3
"""
Core operations shared between MCP server and CLI.
Contains the business logic for validating TAR documents and for running and
analyzing tests with ScriptARest.
"""

import logging
import re
from pathlib import Path
from typing import Optional

from tar_validator import (
    aaa_validator,
    command_validator,
    metadata_validator,
    naming_validator,
    output_parser,
    pattern_validator,
    result_analyzer,
    tar_parser,
)
from tar_validator.config import get_runner_config
from tar_validator.models import Document, SectionType, Severity, ValidationResult
from tar_validator.runner import RunOptions, RunnerConfig, SarRunner

logger = logging.getLogger(__name__)

# Fixed order in which validators run and their issues are merged
VALIDATORS = [
    metadata_validator,
    aaa_validator,
    naming_validator,
    pattern_validator,
    command_validator,
]

TEST_FILE_SUFFIXES = (".mkd", ".md")

_URL_CREDENTIALS_RE = re.compile(r"([^\s:/@]+):([^\s@/]+)@")
_SENSITIVE_QUERY_RE = re.compile(r"([?&](?:password|secret|token|key|apikey)=)[^&\s]*", re.IGNORECASE)
_PASSWORD_ARG_RE = re.compile(r"(\bpassword=)\S+", re.IGNORECASE)

# Global runner (singleton), created from configuration on first use
_runner = None


def redact_secrets(text):
    """Mask URL credentials and sensitive query/argument values in a string."""
    if not isinstance(text, str):
        return text
    text = _URL_CREDENTIALS_RE.sub(r"\1:****@", text)
    text = _SENSITIVE_QUERY_RE.sub(r"\1****", text)
    return _PASSWORD_ARG_RE.sub(r"\1****", text)


def _redact(data):
    if isinstance(data, dict):
        return {k: _redact(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_redact(v) for v in data]
    return redact_secrets(data)


def run_validators(doc: Document) -> list:
    issues = []
    for validator in VALIDATORS:
        issues.extend(validator.validate(doc))
    return issues


def validate_content(content: str, filename: str = None, strict_mode: bool = True) -> dict:
    """
    Validate TAR content with all validators.

    Args:
        content: TAR document text
        filename: Optional name reported back with the result
        strict_mode: Report warnings and info too; when False only errors are kept

    Returns:
        dict with valid flag, file type, issues, severity summary and counts
    """
    doc = tar_parser.parse(content)
    issues = run_validators(doc)
    if not strict_mode:
        issues = [i for i in issues if i.severity == Severity.ERROR]

    result = ValidationResult(
        file_type=doc.file_type,
        issues=issues,
        commands_found=len(doc.commands),
        variables_found=len(doc.variables),
        patterns_found=len(doc.patterns),
        sections_found=len(doc.sections),
    ).to_dict()
    if filename:
        result["filename"] = filename
    return _redact(result)


def validate_file(file_path: str, strict_mode: bool = True) -> dict:
    """
    Validate a TAR file on disk.

    Args:
        file_path: Path to the .mkd/.md file
        strict_mode: Report warnings and info too; when False only errors are kept

    Returns:
        dict like validate_content plus the file path, or an error dict
    """
    try:
        content = Path(file_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Failed to read {file_path}: {e}")
        return {"error": f"Failed to read file: {e}", "file": file_path}

    result = validate_content(content, strict_mode=strict_mode)
    result["file"] = file_path
    logger.info(f"Validated {file_path}: {result['summary']['errors']} errors, "
                f"{result['summary']['warnings']} warnings")
    return result


def find_test_files(directory_path: str, recursive: bool = True) -> list[str]:
    root = Path(directory_path)
    candidates = root.rglob("*") if recursive else root.iterdir()
    return sorted(
        str(p) for p in candidates
        if p.is_file() and p.suffix.lower() in TEST_FILE_SUFFIXES
    )


def validate_suite(directory_path: str, recursive: bool = True, stop_on_error: bool = False) -> dict:
    """
    Validate every .mkd/.md file in a directory, one file at a time.

    Args:
        directory_path: Directory holding the test suite
        recursive: Include subdirectories
        stop_on_error: Stop after the first invalid file

    Returns:
        dict with per-file results and totals
    """
    if not Path(directory_path).is_dir():
        return {"error": f"Directory not found: {directory_path}"}

    files = find_test_files(directory_path, recursive)
    results = []
    for file_path in files:
        result = validate_file(file_path)
        if "error" in result:
            entry = {"file": file_path, "valid": False, "errors": 1, "warnings": 0, "error": result["error"]}
        else:
            entry = {
                "file": file_path,
                "valid": result["valid"],
                "errors": result["summary"]["errors"],
                "warnings": result["summary"]["warnings"],
            }
        results.append(entry)
        if stop_on_error and not entry["valid"]:
            logger.info(f"Stopping suite validation at {file_path}")
            break

    return {
        "directory": directory_path,
        "total_files": len(files),
        "validated_files": len(results),
        "valid_files": sum(1 for r in results if r["valid"]),
        "invalid_files": sum(1 for r in results if not r["valid"]),
        "results": results,
    }


def check_aaa_structure(content: str) -> dict:
    """Check the Arrange-Act-Assert structure of Test Case content."""
    doc = tar_parser.parse(content)
    issues = aaa_validator.validate(doc)
    types = {s.type for s in doc.sections}
    return _redact({
        "applies": metadata_validator.requires_aaa_structure(doc),
        "has_arrange": SectionType.ARRANGE in types,
        "has_act": SectionType.ACT in types,
        "has_assert": SectionType.ASSERT in types,
        "is_valid": not any(i.severity == Severity.ERROR for i in issues),
        "sections": [s.to_dict() for s in doc.sections],
        "issues": [i.to_dict() for i in issues],
    })


def check_commands(content: str) -> dict:
    """Validate TAR command syntax and usage."""
    doc = tar_parser.parse(content)
    issues = command_validator.validate(doc)
    lines_with_issues = {i.line for i in issues if i.line is not None}
    commands = []
    for command in doc.commands:
        entry = {"type": command.type.value, "line": command.line,
                 "has_issues": command.line in lines_with_issues}
        if command.target:
            entry["target"] = command.target
        commands.append(entry)
    return _redact({
        "command_count": len(doc.commands),
        "commands": commands,
        "issues": [i.to_dict() for i in issues],
    })


def get_validation_rules() -> dict:
    """Rule descriptors of all validators, keyed by rule set name."""
    return {v.RULES.name: v.get_rules().to_dict() for v in VALIDATORS}


def get_runner() -> Optional[SarRunner]:
    """Get the SarRunner singleton, creating it from configuration when possible."""
    global _runner
    if _runner is None:
        config = get_runner_config()
        if config.script_a_rest_path and config.server_url:
            _runner = SarRunner(config)
            logger.info("Test runner initialized from environment configuration")
    return _runner


def configure_runner(
    script_a_rest_path: str,
    server_url: str,
    username: str,
    password: str,
    timeout_seconds: float = None
) -> dict:
    """
    Replace the runner configuration.

    Args:
        script_a_rest_path: Path to the ScriptARest executable
        server_url: Server URL to test against
        username: Username for authentication
        password: Password for authentication
        timeout_seconds: Default timeout per test run

    Returns:
        dict with success flag and message
    """
    global _runner
    config = RunnerConfig(
        script_a_rest_path=script_a_rest_path,
        server_url=server_url,
        username=username,
        password=password,
    )
    if timeout_seconds:
        config.timeout_seconds = timeout_seconds
    _runner = SarRunner(config)

    valid, errors = _runner.validate_config()
    if not valid:
        return {"success": False, "message": f"Configuration invalid: {', '.join(errors)}"}

    logger.info(f"Test runner configured for {server_url} using {script_a_rest_path}")
    return {"success": True, "message": "Test runner configured successfully"}


def get_runner_status() -> dict:
    runner = get_runner()
    config = runner.config if runner else get_runner_config()
    if runner:
        valid, errors = runner.validate_config()
    else:
        valid, errors = False, ["Runner not configured"]
    return {
        "configured": bool(config.script_a_rest_path and config.server_url),
        "config": config.to_dict(),
        "validation": {"valid": valid, "errors": errors},
    }


async def run_test(
    file_path: str,
    server_url: str = None,
    username: str = None,
    password: str = None,
    timeout_seconds: float = None,
    additional_args: list = None
) -> dict:
    """
    Run a TAR test with ScriptARest and analyze the result.

    Args:
        file_path: Path to the .mkd file to run
        server_url: Override server URL
        username: Override username
        password: Override password
        timeout_seconds: Override timeout
        additional_args: Extra arguments passed through to ScriptARest

    Returns:
        dict with execution result and analysis, or an error dict
    """
    runner = get_runner()
    if runner is None:
        return {"error": "Test runner not configured. Call configure_runner first or set "
                         "SAR_SCRIPT_A_REST_PATH and SAR_SERVER_URL."}

    logger.info(f"Running test {file_path}")
    result = await runner.run_test(RunOptions(
        file_path=file_path,
        server_url=server_url,
        username=username,
        password=password,
        additional_args=list(additional_args or []),
        timeout_seconds=timeout_seconds,
    ))
    analysis = result_analyzer.analyze(result)
    logger.info(f"Test {result.report.test_name} finished: {result.report.status.value}")

    data = result.to_dict()
    data["analysis"] = {
        "summary": analysis.summary,
        "issues": [i.to_dict() for i in analysis.issues],
    }
    return _redact(data)


def analyze_output(raw_output: str) -> dict:
    """
    Parse raw ScriptARest output and analyze it.

    Args:
        raw_output: Console output captured from a ScriptARest run

    Returns:
        dict with success flag, report, analysis and fix report
    """
    result = output_parser.parse(raw_output)
    analysis = result_analyzer.analyze(result)
    return _redact({
        "success": result.success,
        "report": result.report.to_dict(),
        "errors": [e.to_dict() for e in result.errors],
        "warnings": list(result.warnings),
        "analysis": analysis.to_dict(),
        "fix_report": result_analyzer.generate_fix_report(result),
    })
