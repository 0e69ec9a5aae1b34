#!/usr/bin/env python3
"""
Test Runner for chatdesk

PURPOSE:
    Runs groups of the chatdesk test suite through pytest.

USAGE:
    python tests/run_tests.py [options]

    Options:
    --search     Resolver, knowledge, store and formatting tests
    --pipeline   Session, lock, controller, gateway and client tests
    --api        HTTP endpoint tests
    --all        Run every test (default)
    --verbose    Run with verbose output
"""

import argparse
import subprocess
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent

SUITES = {
    "search": [
        "tests/test_product_resolver.py",
        "tests/test_knowledge.py",
        "tests/test_data_store.py",
        "tests/test_formatting.py",
    ],
    "pipeline": [
        "tests/test_conversation_manager.py",
        "tests/test_session_lock.py",
        "tests/test_nlu_rules.py",
        "tests/test_preprocess.py",
        "tests/test_controller.py",
        "tests/test_webhook_gateway.py",
        "tests/test_whatsapp.py",
        "tests/test_generation_client.py",
    ],
    "api": ["tests/test_api.py"],
    "all": ["tests/"],
}


def run_command(command, description):
    """Run a command and report whether it succeeded."""
    print(f"\n{'='*60}")
    print(f"Running: {description}")
    print(f"Command: {' '.join(command)}")
    print(f"{'='*60}")

    result = subprocess.run(command, cwd=project_root)
    if result.returncode == 0:
        print(f"\n✅ {description} completed successfully!")
        return True
    print(f"\n❌ {description} failed with exit code {result.returncode}")
    return False


def run_suite(name, verbose=False):
    command = [sys.executable, "-m", "pytest", *SUITES[name]]
    if verbose:
        command.append("-v")
    return run_command(command, f"{name.capitalize()} Tests")


def main():
    parser = argparse.ArgumentParser(
        description="Test Runner for chatdesk",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python tests/run_tests.py --search
  python tests/run_tests.py --pipeline --verbose
  python tests/run_tests.py --all
        """
    )
    for name in SUITES:
        parser.add_argument(f"--{name}", action="store_true", help=f"Run the {name} tests")
    parser.add_argument("--verbose", action="store_true", help="Run with verbose output")
    args = parser.parse_args()

    selected = [name for name in SUITES if getattr(args, name)] or ["all"]

    print("🧪 chatdesk Test Runner")
    print("=" * 60)

    success_count = sum(1 for name in selected if run_suite(name, verbose=args.verbose))
    total = len(selected)

    print(f"\n{'='*60}")
    print("TEST RUN SUMMARY")
    print(f"{'='*60}")
    print(f"Suites run: {total}")
    print(f"Successful: {success_count}")
    print(f"Failed: {total - success_count}")

    if success_count == total:
        print("\n🎉 All tests passed!")
        sys.exit(0)
    print(f"\n❌ {total - success_count} test suite(s) failed!")
    sys.exit(1)


if __name__ == "__main__":
    main()
