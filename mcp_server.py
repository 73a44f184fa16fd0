#!/usr/bin/env python3
"""
MCP Server for the TAR test analyzer.
Provides tools for validating TAR test files and for running and analyzing
them with ScriptARest.
"""

import asyncio
import json
import logging

from fastmcp import FastMCP

import core
from tar_validator.config import get_port

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# FastMCP server
mcp = FastMCP("tar-test-analyzer")


# ============== VALIDATION TOOLS ==============

@mcp.tool(
    name="validate_file",
    description="""Perform full validation of a TAR test file (.mkd) against all SAR/TAR standards.

    Runs the metadata, AAA structure, naming, substitution pattern and command validators.

    Args:
        file_path: Path to the .mkd file to validate
        strict_mode: Report warnings and info too (default: true). When false only errors are returned.
    """
)
async def validate_file(file_path: str, strict_mode: bool = True) -> str:
    try:
        result = core.validate_file(file_path, strict_mode)
        return json.dumps(result, indent=2, default=str)
    except Exception as e:
        logger.error(f"Error in validate_file: {str(e)}")
        return json.dumps({"error": str(e)})


@mcp.tool(
    name="validate_content",
    description="""Validate TAR content directly, without reading it from a file.
    Args:
        content: TAR document text, including the YAML frontmatter
        filename: Optional file name reported back with the result
        strict_mode: Report warnings and info too (default: true)
    """
)
async def validate_content(content: str, filename: str = None, strict_mode: bool = True) -> str:
    try:
        result = core.validate_content(content, filename, strict_mode)
        return json.dumps(result, indent=2, default=str)
    except Exception as e:
        logger.error(f"Error in validate_content: {str(e)}")
        return json.dumps({"error": str(e)})


@mcp.tool(
    name="validate_suite",
    description="""Validate all .mkd/.md files in a test suite directory.
    Args:
        directory_path: Directory containing the test files
        recursive: Search subdirectories (default: true)
        stop_on_error: Stop at the first invalid file (default: false)
    """
)
async def validate_suite(directory_path: str, recursive: bool = True, stop_on_error: bool = False) -> str:
    try:
        result = core.validate_suite(directory_path, recursive, stop_on_error)
        return json.dumps(result, indent=2, default=str)
    except Exception as e:
        logger.error(f"Error in validate_suite: {str(e)}")
        return json.dumps({"error": str(e)})


@mcp.tool(
    name="check_aaa_structure",
    description="""Check the Arrange-Act-Assert structure of a Test Case.

    Only Test Case files need AAA structure; other file types report no issues.

    Args:
        content: TAR document text
    """
)
async def check_aaa_structure(content: str) -> str:
    try:
        return json.dumps(core.check_aaa_structure(content), indent=2, default=str)
    except Exception as e:
        logger.error(f"Error in check_aaa_structure: {str(e)}")
        return json.dumps({"error": str(e)})


@mcp.tool(
    name="check_commands",
    description="""Validate TAR command syntax and usage patterns.
    Args:
        content: TAR document text
    """
)
async def check_commands(content: str) -> str:
    try:
        return json.dumps(core.check_commands(content), indent=2, default=str)
    except Exception as e:
        logger.error(f"Error in check_commands: {str(e)}")
        return json.dumps({"error": str(e)})


@mcp.tool(
    name="get_validation_rules",
    description="""Return the validation rules of every validator and their settings."""
)
async def get_validation_rules() -> str:
    return json.dumps(core.get_validation_rules(), indent=2)


# ============== TEST EXECUTION TOOLS ==============

@mcp.tool(
    name="configure_runner",
    description="""Configure the test runner with the ScriptARest path and server credentials.
    Args:
        script_a_rest_path: Path to the ScriptARest executable
        server_url: Server URL to run the tests against
        username: Username for authentication
        password: Password for authentication
        timeout_seconds: Default timeout per test run (default: 600)
    """
)
async def configure_runner(
    script_a_rest_path: str,
    server_url: str,
    username: str,
    password: str,
    timeout_seconds: float = 600
) -> str:
    try:
        result = core.configure_runner(script_a_rest_path, server_url, username, password, timeout_seconds)
        return json.dumps(result, indent=2)
    except Exception as e:
        logger.error(f"Error in configure_runner: {str(e)}")
        return json.dumps({"success": False, "error": str(e)})


@mcp.tool(
    name="run_test",
    description="""Run a TAR test file with ScriptARest and return the parsed results and analysis.

    The runner must be configured first, with configure_runner or SAR_* environment variables.

    Args:
        file_path: Path to the .mkd file to run
        server_url: Override server URL (optional)
        username: Override username (optional)
        password: Override password (optional)
        timeout_seconds: Override timeout (optional)
    """
)
async def run_test(
    file_path: str,
    server_url: str = None,
    username: str = None,
    password: str = None,
    timeout_seconds: float = None
) -> str:
    try:
        result = await core.run_test(file_path, server_url, username, password, timeout_seconds)
        return json.dumps(result, indent=2, default=str)
    except Exception as e:
        logger.error(f"Error in run_test: {str(e)}")
        return json.dumps({"error": str(e)})


@mcp.tool(
    name="analyze_results",
    description="""Analyze raw ScriptARest output and suggest fixes.

    Returns the parsed report, a summary, categorized issues, performance
    recommendations, coverage counts and a Markdown fix report.

    Args:
        raw_output: Console output captured from a ScriptARest run
    """
)
async def analyze_results(raw_output: str) -> str:
    try:
        return json.dumps(core.analyze_output(raw_output), indent=2, default=str)
    except Exception as e:
        logger.error(f"Error in analyze_results: {str(e)}")
        return json.dumps({"error": str(e)})


@mcp.tool(
    name="get_runner_status",
    description="""Return the current runner configuration (without the password) and whether it is valid."""
)
async def get_runner_status() -> str:
    return json.dumps(core.get_runner_status(), indent=2)


# ============== PROMPTS ==============

@mcp.prompt(
    name="fix_failing_test",
    description="Workflow to run a TAR test, understand why it fails and fix it"
)
async def prompt_fix_failing_test(file_path: str):
    """Guide through fixing a failing TAR test."""
    return f"""# Fix Failing Test: {file_path}

## Step 1: Validate the File
Use `validate_file` on `{file_path}`. Fix every error first:
- META errors: frontmatter `type`, `owner` and `mode`
- AAA errors: Test Cases need Act and Assert sections
- PAT errors: broken `{{$...}}`, `{{#...}}` or `{{%...}}` patterns
- CMD errors: missing targets, `Eval` without `Into`, Asserts in Test Utils

## Step 2: Run the Test
Use `run_test` with `{file_path}`. Check `get_runner_status` first if the run fails to start.

## Step 3: Read the Analysis
| Error type | Typical cause | What to check |
|------------|---------------|---------------|
| `server_call_failed` 404 | Missing test data | Run the Test Data / Test Util that creates it first |
| `server_call_failed` 401 | Credentials | Username, password and user permissions |
| `server_call_failed` 422 | Business rule | Field values in the JSON body |
| `assert_failed` | Wrong expectation | Expected values and variable names (case-sensitive) |
| `timeout` | Slow server | Increase the timeout or split the test |

## Step 4: Fix and Re-run
Use `analyze_results` on the raw output for a fix report, edit the file,
then repeat from Step 1 until the test passes.
"""


async def main():
    if core.get_runner():
        logger.info("Test runner configured from environment")
    else:
        logger.info("Test runner not configured; use configure_runner or SAR_* environment variables")

    port = get_port()
    await mcp.run_async(transport="sse", host="0.0.0.0", port=port)


if __name__ == "__main__":
    asyncio.run(main())
