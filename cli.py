#!/usr/bin/env python3
"""CLI for the TAR Test Analyzer."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import core


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(levelname)s: %(message)s'
    )


def _read_input(path: str) -> str:
    """Read a file, or stdin when path is '-'."""
    if path == '-':
        return sys.stdin.read()
    return Path(path).read_text(encoding='utf-8')


def _print_issues(issues: list, indent: str = "  "):
    for issue in issues:
        line = f"line {issue['line']}" if issue.get('line') else "file"
        print(f"{indent}[{issue['severity'].upper():7}] {issue['code']} ({line}): {issue['message']}")
        if issue.get('suggestion'):
            first, *_ = issue['suggestion'].splitlines()
            print(f"{indent}          -> {first}")


def cmd_validate(args):
    """Validate a TAR file (mirrors MCP validate_file tool)."""
    result = core.validate_file(args.file, strict_mode=not args.errors_only)

    if "error" in result:
        print(f"Error: {result['error']}", file=sys.stderr)
        return 1

    if args.format == 'json':
        print(json.dumps(result, indent=2, default=str))
    else:
        summary = result['summary']
        status = "VALID" if result['valid'] else "INVALID"
        print(f"\n{'='*60}")
        print(f"File: {args.file}")
        print(f"Type: {result['file_type']}")
        print(f"Status: {status}")
        print(f"Errors: {summary['errors']}  Warnings: {summary['warnings']}  Info: {summary['info']}")
        counts = result['metadata']
        print(f"Found: {counts['sections_found']} sections, {counts['commands_found']} commands, "
              f"{counts['variables_found']} variable refs, {counts['patterns_found']} patterns")
        if result['issues']:
            print(f"\nIssues ({len(result['issues'])}):")
            _print_issues(result['issues'])
        print(f"{'='*60}\n")

    return 0 if result['valid'] else 1


def cmd_validate_suite(args):
    """Validate every test file in a directory (mirrors MCP validate_suite tool)."""
    result = core.validate_suite(args.directory, recursive=not args.no_recursive,
                                 stop_on_error=args.stop_on_error)

    if "error" in result:
        print(f"Error: {result['error']}", file=sys.stderr)
        return 1

    if args.format == 'json':
        print(json.dumps(result, indent=2, default=str))
    else:
        print(f"\nSuite: {result['directory']}")
        print(f"Files: {result['total_files']}  Valid: {result['valid_files']}  "
              f"Invalid: {result['invalid_files']}")
        for r in result['results']:
            mark = "OK  " if r['valid'] else "FAIL"
            print(f"  {mark} {r['file']} ({r['errors']} errors, {r['warnings']} warnings)")
        if result['validated_files'] < result['total_files']:
            print(f"  ... stopped after {result['validated_files']} files")
        print()

    return 0 if result['invalid_files'] == 0 else 1


def cmd_check_aaa(args):
    """Check AAA structure (mirrors MCP check_aaa_structure tool)."""
    result = core.check_aaa_structure(_read_input(args.file))

    if args.format == 'json':
        print(json.dumps(result, indent=2, default=str))
    else:
        if not result['applies']:
            print("AAA structure only applies to Test Case files; nothing to check.")
        for name in ('arrange', 'act', 'assert'):
            print(f"  {name.capitalize():8} {'yes' if result['has_' + name] else 'no'}")
        if result['issues']:
            print("\nIssues:")
            _print_issues(result['issues'])

    return 0 if result['is_valid'] else 1


def cmd_check_commands(args):
    """Check command syntax (mirrors MCP check_commands tool)."""
    result = core.check_commands(_read_input(args.file))

    if args.format == 'json':
        print(json.dumps(result, indent=2, default=str))
    else:
        print(f"Commands ({result['command_count']}):")
        for c in result['commands']:
            flag = " !" if c['has_issues'] else ""
            print(f"  {c['line']:>5}  {c['type']:<18}{c.get('target', '')}{flag}")
        if result['issues']:
            print("\nIssues:")
            _print_issues(result['issues'])

    has_errors = any(i['severity'] == 'error' for i in result['issues'])
    return 1 if has_errors else 0


def cmd_rules(args):
    """Show validation rules (mirrors MCP get_validation_rules tool)."""
    rules = core.get_validation_rules()
    if args.format == 'json':
        print(json.dumps(rules, indent=2))
        return 0

    for name, rule in rules.items():
        state = "enabled" if rule['enabled'] else "disabled"
        print(f"{name} ({state}, default severity: {rule['severity']})")
        for key, value in rule['options'].items():
            print(f"    {key}: {value}")
    return 0


def _run_async(coro):
    """Helper to run async functions from sync CLI."""
    return asyncio.run(coro)


def _print_analysis(analysis: dict):
    print(f"\n{analysis['summary']}")
    if analysis.get('issues'):
        print("\nIssues:")
        for issue in analysis['issues']:
            print(f"  [{issue['severity'].upper():7}] {issue['description']}")
            if issue.get('suggestion'):
                print(f"            -> {issue['suggestion']}")
    performance = analysis.get('performance')
    if performance and performance['recommendations']:
        print("\nPerformance:")
        for rec in performance['recommendations']:
            print(f"  - {rec}")


def cmd_run(args):
    """Run a test with ScriptARest (mirrors MCP run_test tool)."""
    async def _run():
        if args.sar_path:
            configured = core.configure_runner(
                args.sar_path, args.server_url or "", args.username or "", args.password or "",
                args.timeout,
            )
            if not configured['success']:
                print(f"Error: {configured['message']}", file=sys.stderr)
                return 1

        result = await core.run_test(
            args.file,
            server_url=args.server_url,
            username=args.username,
            password=args.password,
            timeout_seconds=args.timeout,
            additional_args=args.extra,
        )

        if "error" in result:
            print(f"Error: {result['error']}", file=sys.stderr)
            return 1

        if args.format == 'json':
            print(json.dumps(result, indent=2, default=str))
        else:
            report = result['report']
            print(f"\n{'='*60}")
            print(f"Test: {report['test_name']}")
            print(f"Status: {report['status']}")
            print(f"Time: {report['time_seconds']:.2f}s")
            print(f"Server calls: {report['server_calls']} ({report['failed_server_calls']} failed)")
            print(f"Asserts: {report['asserts']} ({report['failed_asserts']} failed)")
            _print_analysis(result['analysis'])
            print(f"{'='*60}\n")

        return 0 if result['success'] else 1

    return _run_async(_run())


def cmd_analyze(args):
    """Analyze saved ScriptARest output (mirrors MCP analyze_results tool)."""
    result = core.analyze_output(_read_input(args.output_file))

    if args.format == 'json':
        print(json.dumps(result, indent=2, default=str))
    else:
        _print_analysis(result['analysis'])
        if not result['success']:
            print()
            print(result['fix_report'])

    return 0 if result['success'] else 1


def cmd_runner_status(args):
    """Show runner configuration (mirrors MCP get_runner_status tool)."""
    status = core.get_runner_status()
    if args.format == 'json':
        print(json.dumps(status, indent=2))
    else:
        config = status['config']
        print(f"Configured: {status['configured']}")
        print(f"  ScriptARest: {config['script_a_rest_path'] or '-'}")
        print(f"  Server URL:  {config['server_url'] or '-'}")
        print(f"  Username:    {config['username'] or '-'}")
        print(f"  Password:    {'set' if config['has_password'] else 'not set'}")
        print(f"  Timeout:     {config['timeout_seconds']}s")
        for error in status['validation']['errors']:
            print(f"  ! {error}")
    return 0 if status['validation']['valid'] else 1


def main():
    parser = argparse.ArgumentParser(description='TAR Test Analyzer')
    parser.add_argument('-v', '--verbose', action='store_true')

    sub = parser.add_subparsers(dest='command')

    # ===================
    # Validation Commands
    # ===================

    # validate (mirrors validate_file)
    p = sub.add_parser('validate', help='Validate a TAR file (MCP: validate_file)')
    p.add_argument('file', help='Path to the .mkd file')
    p.add_argument('--errors-only', action='store_true', help='Only report errors (non-strict mode)')
    p.add_argument('--format', '-f', choices=['text', 'json'], default='text')

    # validate-suite (mirrors validate_suite)
    p = sub.add_parser('validate-suite', help='Validate all test files in a directory (MCP: validate_suite)')
    p.add_argument('directory', help='Test suite directory')
    p.add_argument('--no-recursive', action='store_true', help='Do not search subdirectories')
    p.add_argument('--stop-on-error', action='store_true', help='Stop at the first invalid file')
    p.add_argument('--format', '-f', choices=['text', 'json'], default='text')

    # check-aaa (mirrors check_aaa_structure)
    p = sub.add_parser('check-aaa', help='Check Arrange-Act-Assert structure (MCP: check_aaa_structure)')
    p.add_argument('file', help="Path to the .mkd file, or '-' for stdin")
    p.add_argument('--format', '-f', choices=['text', 'json'], default='text')

    # check-commands (mirrors check_commands)
    p = sub.add_parser('check-commands', help='Check TAR command usage (MCP: check_commands)')
    p.add_argument('file', help="Path to the .mkd file, or '-' for stdin")
    p.add_argument('--format', '-f', choices=['text', 'json'], default='text')

    # rules (mirrors get_validation_rules)
    p = sub.add_parser('rules', help='Show validation rules (MCP: get_validation_rules)')
    p.add_argument('--format', '-f', choices=['text', 'json'], default='text')

    # ===================
    # Execution Commands
    # ===================

    # run (mirrors run_test, optionally configure_runner)
    p = sub.add_parser('run', help='Run a test with ScriptARest (MCP: run_test)')
    p.add_argument('file', help='Path to the .mkd file')
    p.add_argument('--sar-path', help='ScriptARest executable (defaults to SAR_SCRIPT_A_REST_PATH)')
    p.add_argument('--server-url', help='Server URL override')
    p.add_argument('--username', '-u', help='Username override')
    p.add_argument('--password', '-p', help='Password override')
    p.add_argument('--timeout', type=float, help='Timeout in seconds')
    p.add_argument('--extra', nargs='*', default=[], help='Extra arguments passed to ScriptARest')
    p.add_argument('--format', '-f', choices=['text', 'json'], default='text')

    # analyze (mirrors analyze_results)
    p = sub.add_parser('analyze', help='Analyze saved ScriptARest output (MCP: analyze_results)')
    p.add_argument('output_file', help="File with the raw output, or '-' for stdin")
    p.add_argument('--format', '-f', choices=['text', 'json'], default='text')

    # runner-status (mirrors get_runner_status)
    p = sub.add_parser('runner-status', help='Show runner configuration (MCP: get_runner_status)')
    p.add_argument('--format', '-f', choices=['text', 'json'], default='text')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose)

    cmds = {
        'validate': cmd_validate,
        'validate-suite': cmd_validate_suite,
        'check-aaa': cmd_check_aaa,
        'check-commands': cmd_check_commands,
        'rules': cmd_rules,
        'run': cmd_run,
        'analyze': cmd_analyze,
        'runner-status': cmd_runner_status,
    }
    try:
        return cmds[args.command](args)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
