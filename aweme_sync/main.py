"""
Command line entry point.

    python -m aweme_sync.main sync          # one pass over INPUT_URLS
    python -m aweme_sync.main transcripts   # fill missing transcripts in every table
    python -m aweme_sync.main subscribe     # repeat both until SIGINT/SIGTERM
    python -m aweme_sync.main user-info     # show the account's point balance
"""

import argparse
import asyncio
import signal
import sys
from contextlib import asynccontextmanager
from typing import List, Optional

from common_py.logging_config import configure_logging
from common_py.metrics import metrics
from aweme_sync.clients.notification_client import NotificationClient
from aweme_sync.clients.transcript_api_client import TranscriptApiClient
from aweme_sync.clients.video_data_client import VideoDataClient, split_input_urls
from aweme_sync.config_loader import config
from aweme_sync.datastore.factory import load_datastore
from aweme_sync.services.cancellation import CancellationToken
from aweme_sync.services.exceptions import AwemeSyncError, ValidationError
from aweme_sync.services.subscription_scheduler import SubscriptionScheduler
from aweme_sync.services.sync_engine import SyncEngine
from aweme_sync.services.transcript.task_pipeline import TaskPipeline

logger = configure_logging("aweme-sync:main", log_level=config.LOG_LEVEL, log_format=config.LOG_FORMAT)


@asynccontextmanager
async def service_context():
    """API clients for one process run"""
    video_client = VideoDataClient()
    transcript_client = TranscriptApiClient()
    notifier = NotificationClient()
    try:
        yield video_client, transcript_client, notifier
    finally:
        await video_client.close()
        await transcript_client.close()
        await notifier.close()


def _log_progress(stage: str, done: int, total: int, attempt: int) -> None:
    logger.info("Progress", stage=stage, done=done, total=total, attempt=attempt)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="aweme-sync", description="Video metadata sync and transcript pipeline")
    parser.add_argument("command", choices=["sync", "transcripts", "subscribe", "user-info"])
    parser.add_argument("--urls", help="Input URLs, one per line (defaults to INPUT_URLS)")
    parser.add_argument("--platform", choices=["douyin", "tiktok"], default=None)
    parser.add_argument("--page-turns", type=int, default=None)
    parser.add_argument("--interval-hours", type=float, default=None)
    return parser


def _input_urls(args: argparse.Namespace) -> List[str]:
    if args.urls:
        return split_input_urls(args.urls)
    return split_input_urls("\n".join(config.INPUT_URLS))


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    datastore = load_datastore(config.DATASTORE_BACKEND)

    async with service_context() as (video_client, transcript_client, notifier):
        engine = SyncEngine(datastore, video_client)
        pipeline = TaskPipeline(transcript_client, progress=_log_progress)

        if args.command == "user-info":
            info = await video_client.get_user_info()
            print(f"bonus_points_balance={info.bonus_points_balance} "
                  f"recent_deducted_points={info.recent_deducted_points}")
            return 0

        if args.command == "sync":
            result = await engine.run(_input_urls(args), platform=args.platform, page_turns=args.page_turns)
            metrics.log_summary("sync_metrics")
            return 0 if result.urls_failed < result.urls_total else 1

        if args.command == "transcripts":
            results = await pipeline.run_all_tables(datastore)
            succeeded = sum(r.succeeded for r in results.values())
            failed = sum(r.failed for r in results.values())
            logger.info("Transcripts finished", succeeded=succeeded, failed=failed)
            metrics.log_summary("pipeline_metrics")
            return 0

        token = CancellationToken()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, token.cancel, f"received {sig.name}")
            except NotImplementedError:
                # Windows event loops have no signal handlers; Ctrl+C still raises KeyboardInterrupt
                pass
        scheduler = SubscriptionScheduler(
            datastore, engine, pipeline, notifier, _input_urls(args),
            interval_hours=args.interval_hours, token=token,
        )
        await scheduler.run()
        return 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except ValidationError as e:
        logger.error("Invalid parameters", field=e.field, error_code=e.error_code.value, error=str(e))
        sys.exit(2)
    except AwemeSyncError as e:
        logger.error("Run failed", error_code=e.error_code.value, error=str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down aweme-sync")


if __name__ == "__main__":
    run()
