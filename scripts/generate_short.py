#!/usr/bin/env python3
"""
CLI Script: Generate Short
==========================

Command-line tool for generating one avatar short.

Usage:
    python scripts/generate_short.py -s "Hello there!" -b https://example.com/beach.jpg -c kate
    python scripts/generate_short.py --script-file script.txt -b https://example.com/bg.png -c kate --deadline 600
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from avatar_shorts import CancelToken, Config, PipelineError, PipelineRequest, ShortsPipeline
from avatar_shorts.core.exceptions import ConfigurationError


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Generate a vertical avatar short",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s -s "Hello there!" -b https://example.com/beach.jpg -c kate
  %(prog)s --script-file script.txt -b https://example.com/bg.png -c kate --json
        """,
    )

    # Request fields
    parser.add_argument(
        "-s", "--script",
        help="Script the avatar speaks",
    )
    parser.add_argument(
        "--script-file",
        help="Read the script from a file instead",
    )
    parser.add_argument(
        "-b", "--background",
        required=True,
        help="Background image URL",
    )
    parser.add_argument(
        "-c", "--creator",
        required=True,
        help="Avatar creator ID",
    )

    # Run settings
    parser.add_argument(
        "--deadline",
        type=float,
        help="Cancel the run after this many seconds (default: from config)",
    )
    parser.add_argument(
        "--config",
        help="Path to config file",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the outcome as JSON",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging",
    )

    return parser.parse_args()


async def main():
    """Main CLI entry point."""
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    script = args.script
    if args.script_file:
        script = Path(args.script_file).read_text()
    if not script:
        print("Error: --script or --script-file is required")
        sys.exit(1)

    try:
        config = Config.load(args.config)
        pipeline = ShortsPipeline(config)
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}")
        sys.exit(2)

    deadline = args.deadline or config.pipeline.deadline_seconds
    request = PipelineRequest(
        script=script,
        background_image_url=args.background,
        creator_id=args.creator,
    )

    if not args.json:
        print("=" * 50)
        print("Avatar Shorts Generator")
        print("=" * 50)

    try:
        async with pipeline:
            outcome = await pipeline.run_pipeline(request, CancelToken(timeout=deadline))
    except KeyboardInterrupt:
        print("\nCancelled")
        sys.exit(130)

    if args.json:
        print(json.dumps(outcome.to_dict(), indent=2))
    elif isinstance(outcome, PipelineError):
        print(f"\nFailed in {outcome.stage} ({outcome.kind}): {outcome.detail}")
        if outcome.status_code:
            print(f"Upstream status: {outcome.status_code}")
    else:
        print(f"\nVideo saved: {outcome.final_artifact_path}")
        if outcome.final_artifact_url:
            print(f"Video URL: {outcome.final_artifact_url}")
        for record in outcome.stages:
            print(f"  {record.stage}: {record.duration_seconds:.1f}s{' (skipped)' if record.skipped else ''}")
        print("=" * 50)

    sys.exit(1 if isinstance(outcome, PipelineError) else 0)


if __name__ == "__main__":
    asyncio.run(main())
