"""
Command line entry point for LadderStream

Usage:
    python -m ladderstream process INPUT OUTPUT_DIR [--thumbnails N] [--preview]
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from . import __version__
from .config import load_config, set_config
from .errors import LadderStreamError
from .jobs import JobQueue
from .log import setup_logging
from .models import JobStatus, ProcessingOptions, WatermarkOptions

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ladderstream",
        description="Adaptive bitrate HLS packaging for a single video"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    process = subparsers.add_parser("process", help="Process one video into an HLS ladder")
    process.add_argument("input", help="Local path or http(s) URL of the source video")
    process.add_argument("output_dir", help="Directory that receives the HLS output")
    process.add_argument(
        "--thumbnails",
        type=int,
        default=5,
        metavar="N",
        help="Number of thumbnails to extract, 0 to skip (default: 5)"
    )
    process.add_argument(
        "--preview",
        action="store_true",
        help="Also render a short low resolution preview clip"
    )
    process.add_argument(
        "--preview-duration",
        type=float,
        default=30.0,
        metavar="S",
        help="Preview length in seconds (default: 30)"
    )
    process.add_argument(
        "--watermark",
        metavar="TEXT",
        help="Burn a text watermark into every rendition"
    )
    process.add_argument(
        "--timeout",
        type=float,
        metavar="S",
        help="Fail the job if it runs longer than this many seconds"
    )
    process.add_argument("--config", metavar="FILE", help="Path to a YAML config file")
    return parser


def options_from_args(args: argparse.Namespace) -> ProcessingOptions:
    watermark = None
    if args.watermark:
        watermark = WatermarkOptions(text=args.watermark)
    return ProcessingOptions(
        generate_thumbnails=args.thumbnails > 0,
        thumbnail_count=max(0, args.thumbnails),
        generate_preview=args.preview,
        preview_duration_seconds=args.preview_duration,
        watermark=watermark,
        timeout_seconds=args.timeout,
    )


async def run_process(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    set_config(config)
    setup_logging(config.logging)

    options = options_from_args(args)

    async with JobQueue(config) as queue:
        queued = await queue.add_job(None, args.input, args.output_dir, options)
        status = await queue.wait_for_job(queued.job_id)

    print(json.dumps(status.model_dump(mode="json"), indent=2))
    return 0 if status.status == JobStatus.COMPLETED else 1


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    try:
        exit_code = asyncio.run(run_process(args))
    except LadderStreamError as e:
        logger.error(f"{e}")
        exit_code = 1
    except ValidationError as e:
        logger.error(f"Invalid options: {e}")
        exit_code = 2
    except KeyboardInterrupt:
        exit_code = 130

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
