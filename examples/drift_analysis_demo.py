#!/usr/bin/env python3
"""
Drift Analysis Demo

Runs one pull request through the drift analysis pipeline and prints the
result. Nothing is published unless --comment or --open-pr is given.

Usage:
    python examples/drift_analysis_demo.py <pr_url> <model_path> [--model-repo owner/repo] [--patch] [--open-pr] [--comment]

Example:
    python examples/drift_analysis_demo.py https://github.com/acme/orders/pull/12 ./architecture --patch

Requires ANTHROPIC_API_KEY and GITHUB_TOKEN in the environment.
"""

import asyncio
import sys

from drift_reviewer import AnalyzeRequest, DriftReviewerAPI
from drift_reviewer.errors import DriftReviewerError


def parse_args(argv):
    positional = [a for a in argv if not a.startswith("--")]
    if len(positional) != 2:
        print(__doc__)
        sys.exit(1)

    model_repo = None
    if "--model-repo" in argv:
        index = argv.index("--model-repo")
        if index + 1 >= len(argv):
            print("Error: --model-repo needs a value")
            sys.exit(1)
        model_repo = argv[index + 1]
        positional = [a for a in positional if a != model_repo]

    return AnalyzeRequest(
        url=positional[0],
        model_path=positional[1] if len(positional) > 1 else ".",
        model_repo=model_repo,
        patch_model="--patch" in argv,
        open_pr="--open-pr" in argv,
        comment="--comment" in argv,
    )


def print_result(result):
    analysis = result.analysis
    print(f"\nComponent: {analysis.component.id or '(none)'}")
    if result.candidate_components:
        print(f"Candidates: {', '.join(c['id'] for c in result.candidate_components)}")
    print(f"Summary: {analysis.summary}")

    print(f"\nViolations ({len(analysis.violations)}):")
    for violation in analysis.violations:
        location = f" [{violation.file}]" if violation.file else ""
        print(f"  - {violation.severity.upper()}: {violation.description}{location}")

    if result.patch:
        print(f"\nModel patch for {result.patch.file_path}:")
        for line in result.patch.inserted_lines:
            print(f"  + {line.strip()}")
        for skip in result.patch.skipped:
            print(f"  skipped {skip.source} -> {skip.target}: {skip.reason}")

    if result.published and result.published.generated_change_request:
        print(f"\nModel PR: {result.published.generated_change_request.url}")
    print(f"\nCompleted in {result.processing_time:.2f}s")


def main():
    """Main demo function."""
    request = parse_args(sys.argv[1:])

    try:
        result = asyncio.run(DriftReviewerAPI().analyze(request))
    except DriftReviewerError as e:
        print(f"Error [{e.code.value}]: {e.user_message or e.message}")
        sys.exit(1)

    print_result(result)
    sys.exit(2 if result.has_violations else 0)


if __name__ == "__main__":
    main()
