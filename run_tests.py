#!/usr/bin/env python3
"""
Test runner for Review Desk
Groups the pytest suites by the part of the system they exercise
"""
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent
TESTS_DIR = PROJECT_ROOT / "tests"

# suite name -> (pytest arguments, description)
SUITES = {
    "all": ([], "All tests"),
    "unit": (["-m", "unit"], "Unit tests"),
    "integration": (["-m", "integration"], "Integration tests"),
    "fast": (["-m", "not slow"], "Everything except retry/concurrency timing tests"),
    "pipeline": (
        ["tests/test_ingest.py", "tests/test_normalize.py", "tests/test_dedup.py",
         "tests/test_importer.py", "tests/test_export.py"],
        "Import pipeline: parse, normalize, dedup, store, export",
    ),
    "providers": (
        ["tests/test_collect.py", "tests/test_classify.py", "tests/test_mailbox.py"],
        "Marketplace clients, AI classifier and mailbox threading (all mocked)",
    ),
    "surface": (
        ["tests/test_api.py", "tests/test_main.py"],
        "HTTP API and CLI",
    ),
}


def available_modules():
    return sorted(p.stem[len("test_"):] for p in TESTS_DIR.glob("test_*.py"))


def usage():
    lines = ["Usage: python run_tests.py SUITE | coverage | module NAME", "", "Suites:"]
    for name, (_, description) in SUITES.items():
        lines.append(f"  {name:<12} {description}")
    lines.append(f"  {'coverage':<12} All tests with an HTML + terminal coverage report")
    lines.append(f"  {'module NAME':<12} One test file: {', '.join(available_modules())}")
    print("\n".join(lines))


def run_pytest(args, description):
    """Run pytest from the project root and report the outcome"""
    print(f"\n{'=' * 60}\n  {description}\n{'=' * 60}\n")
    result = subprocess.run([sys.executable, "-m", "pytest", "-v", *args], cwd=PROJECT_ROOT)
    status = "PASS" if result.returncode == 0 else f"FAIL (exit code {result.returncode})"
    print(f"\n[{status}] {description}")
    return result.returncode == 0


def main():
    if len(sys.argv) < 2:
        usage()
        return

    command = sys.argv[1]

    if command in SUITES:
        args, description = SUITES[command]
        success = run_pytest(args or ["tests/"], description)

    elif command == "coverage":
        success = run_pytest(
            ["tests/", "--cov=src/review_desk", "--cov-report=html", "--cov-report=term"],
            "All tests with coverage",
        )
        if success:
            print(f"\n[INFO] Coverage report saved to: {PROJECT_ROOT / 'htmlcov' / 'index.html'}")

    elif command == "module":
        modules = available_modules()
        if len(sys.argv) < 3 or sys.argv[2] not in modules:
            print(f"[ERROR] Choose a module: {', '.join(modules)}")
            sys.exit(1)
        name = sys.argv[2]
        success = run_pytest([f"tests/test_{name}.py"], f"Tests for {name}")

    else:
        print(f"[ERROR] Unknown command: {command}")
        usage()
        sys.exit(1)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
