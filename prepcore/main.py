"""prepcore CLI entrypoint — ``python -m prepcore.main``."""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from .analytics.recommendations import RecommendationEngine
from .config import load_settings
from .observability.logging_setup import configure_logging
from .orchestration.workflow import run_workflow
from .provider_client import get_provider_runner
from .util.console import console


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="prepcore", description="Timed exam practice")
    parser.add_argument("--offline", action="store_true", help="rule-based recommendations only")
    parser.add_argument("--user", default="default", help="profile to record results under")
    parser.add_argument("--report", action="store_true", help="print the analytics report and exit")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    configure_logging()
    settings = load_settings()

    runner = None
    if not args.offline:
        runner = get_provider_runner(settings)
        if runner is None:
            console.print(
                "[yellow]No recommender API key — using rule-based recommendations.[/yellow]"
            )

    try:
        run_workflow(
            settings=settings,
            engine=RecommendationEngine(runner),
            user_id=args.user,
            report_only=args.report,
        )
    except (KeyboardInterrupt, EOFError):
        console.print("\n[dim]Session cancelled.[/dim]")
        sys.exit(0)


if __name__ == "__main__":
    main()
