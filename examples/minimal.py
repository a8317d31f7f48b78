#!/usr/bin/env python3
"""
LadderStream Minimal Example - Package a Video in 15 Lines
==========================================================

Prerequisites:
    1. FFmpeg on PATH
    2. pip install -e .

Usage:
    python examples/minimal.py input.mp4 ./out
"""

import asyncio
import sys

from ladderstream.jobs import JobQueue
from ladderstream.models import JobStatus, ProcessingOptions


async def main(source: str, output_dir: str) -> None:
    async with JobQueue() as queue:
        queue.register_progress_callback(
            lambda job_id, percent, stage: print(f"\r{stage:<16} {percent:5.1f}%", end="", flush=True)
        )
        job = await queue.add_job(None, source, output_dir, ProcessingOptions(generate_preview=True))
        status = await queue.wait_for_job(job.job_id)

    print()
    if status.status == JobStatus.ERROR:
        print(f"❌ Error: {status.error_detail}")
    else:
        print(f"🎬 Manifest: {status.result['manifest_path']}")
        if status.error_detail:
            print(f"⚠ {status.error_detail}")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1], sys.argv[2]))
