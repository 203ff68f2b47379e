#!/usr/bin/env python3
"""
CLI Script: Run Worker
======================

Starts the generation job worker, or enqueues a job for it.

Usage:
    python scripts/run_worker.py
    python scripts/run_worker.py --enqueue --project demo --scene s1 --prompt "Latte art close-up"
    python scripts/run_worker.py --once
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from video_pipeline.core.config import Config
from video_pipeline.core.exceptions import VideoPipelineError
from video_pipeline.core.logging_setup import setup_logging
from video_pipeline.jobs import GenerationWorker, JobStore, JobUpdate
from video_pipeline.utils.storage import create_storage, ensure_dir
from video_pipeline.workflow import ProviderOrchestrator

logger = logging.getLogger("run_worker")


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run the scene generation worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                         Poll for jobs until interrupted
  %(prog)s --once                  Process at most one pending job
  %(prog)s --enqueue --project p1 --scene s1 --prompt "Sunlit cafe interior"
        """,
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Process a single pending job and exit",
    )
    parser.add_argument(
        "--enqueue",
        action="store_true",
        help="Create a pending job instead of running the worker",
    )
    parser.add_argument("--project", help="Project id (with --enqueue)")
    parser.add_argument("--scene", help="Scene id (with --enqueue)")
    parser.add_argument("--prompt", help="Visual prompt (with --enqueue)")
    parser.add_argument("--fallback-prompt", help="Fallback prompt (with --enqueue)")
    parser.add_argument("--provider", help="Force a provider (with --enqueue)")
    parser.add_argument("-d", "--duration", type=int, help="Clip duration in seconds")

    parser.add_argument(
        "--config",
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging",
    )

    return parser.parse_args()


def log_update(update: JobUpdate) -> None:
    logger.info(f"{update.job_id} {update.event}: {update.status.value} ({update.progress}%)")


async def run(args, config: Config) -> int:
    ensure_dir(Path(config.worker.db_path).parent)
    storage = create_storage(config.storage)

    async with JobStore(config.worker.db_path) as store:
        async with ProviderOrchestrator(
            config.providers,
            storage=storage,
            storage_prefix=config.storage.key_prefix,
        ) as orchestrator:
            worker = GenerationWorker(store, orchestrator, config.worker)
            worker.subscribe(log_update)

            if args.enqueue:
                if not (args.project and args.scene and args.prompt):
                    print("Error: --project, --scene and --prompt are required with --enqueue")
                    return 1
                job = await worker.create_job(
                    args.project,
                    args.scene,
                    args.prompt,
                    duration=args.duration,
                    fallback_prompt=args.fallback_prompt,
                    provider=args.provider,
                )
                print(f"Enqueued job {job.id}")
                return 0

            if args.once:
                job = await worker.tick()
                if job is None:
                    print("No pending jobs")
                    return 0
                print(f"Job {job.id}: {job.status.value}")
                return 0 if job.error_message is None else 1

            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop.set)

            await worker.start()
            await stop.wait()
            await worker.stop()
    return 0


def main():
    """Main CLI entry point."""
    args = parse_args()

    try:
        config = Config.load(args.config)
    except VideoPipelineError as e:
        print(f"Error: {e}")
        sys.exit(1)

    setup_logging(config.logging, "DEBUG" if args.verbose else None)
    sys.exit(asyncio.run(run(args, config)))


if __name__ == "__main__":
    main()
