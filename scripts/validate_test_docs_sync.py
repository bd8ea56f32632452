#!/usr/bin/env python3
"""
Check that the business summary of the integration scenarios is in sync with the tests.

Every TestX class and test_x method in tests/test_integration_scenarios.py
must appear in docs/test_scenarios_business_summary.md as
**Test Class**: `TestX` / **Test Method**: `test_x`. Documented entries with
no matching test are reported as warnings.

Run: python scripts/validate_test_docs_sync.py [--tests PATH] [--doc PATH]
"""

import argparse
import re
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_TEST_FILE = PROJECT_ROOT / 'tests' / 'test_integration_scenarios.py'
DEFAULT_DOC_FILE = PROJECT_ROOT / 'docs' / 'test_scenarios_business_summary.md'

CLASS_RE = re.compile(r'^class (Test\w+)')
METHOD_RE = re.compile(r'^\s+def (test_\w+)')
DOC_CLASS_RE = re.compile(r'\*\*Test Class\*\*:\s*`(Test\w+)`')
DOC_METHOD_RE = re.compile(r'\*\*Test Method\*\*:\s*`(test_\w+)`')


def extract_test_classes_and_methods(test_file: Path) -> dict[str, list[str]]:
    """Map each scenario class to its test methods, in file order."""
    classes: dict[str, list[str]] = {}
    current = None
    for line in test_file.read_text().splitlines():
        class_match = CLASS_RE.match(line)
        if class_match:
            current = class_match.group(1)
            classes[current] = []
        elif current:
            method_match = METHOD_RE.match(line)
            if method_match:
                classes[current].append(method_match.group(1))
    return classes


def extract_documented_tests(doc_file: Path) -> tuple[set[str], set[str]]:
    """Class and method names referenced by the business summary."""
    content = doc_file.read_text()
    return set(DOC_CLASS_RE.findall(content)), set(DOC_METHOD_RE.findall(content))


def find_sync_issues(test_file: Path, doc_file: Path) -> tuple[list[str], list[str]]:
    """Return (errors, warnings): undocumented tests and stale documentation."""
    test_classes = extract_test_classes_and_methods(test_file)
    doc_classes, doc_methods = extract_documented_tests(doc_file)
    test_methods = {m for methods in test_classes.values() for m in methods}

    errors = [f"Missing class documentation: {c}" for c in sorted(set(test_classes) - doc_classes)]
    errors += [f"Missing method documentation: {m}" for m in sorted(test_methods - doc_methods)]
    warnings = [f"Documented class no longer exists: {c}" for c in sorted(doc_classes - set(test_classes))]
    warnings += [f"Documented method no longer exists: {m}" for m in sorted(doc_methods - test_methods)]
    return errors, warnings


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument('--tests', type=Path, default=DEFAULT_TEST_FILE)
    parser.add_argument('--doc', type=Path, default=DEFAULT_DOC_FILE)
    args = parser.parse_args(argv)

    for path in (args.tests, args.doc):
        if not path.exists():
            print(f"❌ File not found: {path}")
            return 1

    errors, warnings = find_sync_issues(args.tests, args.doc)
    test_classes = extract_test_classes_and_methods(args.tests)
    doc_classes, doc_methods = extract_documented_tests(args.doc)

    print("=" * 60)
    print(f"Scenario docs sync: {args.tests.name} <-> {args.doc.name}")
    print("=" * 60)

    for cls, methods in test_classes.items():
        print(f"\n  {'✅' if cls in doc_classes else '❌'} {cls}")
        for method in methods:
            print(f"      {'✅' if method in doc_methods else '❌'} {method}")

    if errors:
        print(f"\n❌ ERRORS ({len(errors)}):")
        for error in errors:
            print(f"   - {error}")
    if warnings:
        print(f"\n⚠️  WARNINGS ({len(warnings)}):")
        for warning in warnings:
            print(f"   - {warning}")
    if not errors and not warnings:
        print("\n✅ All scenarios are documented and in sync!")

    return 1 if errors else 0


if __name__ == '__main__':
    sys.exit(main())
