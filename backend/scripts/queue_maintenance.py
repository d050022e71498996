import argparse

from paygsite.application.jobs.queue import cleanup_old_jobs, get_queue_stats, requeue_stale_jobs
from paygsite.core.config import settings
from paygsite.domain import models  # noqa: F401
from paygsite.infrastructure.db.session import session_scope
from paygsite.infrastructure.logging.bootstrap import configure_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Job queue maintenance")
    subparsers = parser.add_subparsers(dest="command", required=True)

    cleanup = subparsers.add_parser("cleanup", help="Delete completed jobs past the retention window")
    cleanup.add_argument("--older-than-days", type=int, default=settings.job_retention_days)

    requeue = subparsers.add_parser("requeue-stale", help="Send jobs stuck in running back through the retry path")
    requeue.add_argument("--stale-after-seconds", type=int, default=settings.job_stale_after_seconds)

    subparsers.add_parser("stats", help="Print job counts per status")
    return parser.parse_args(argv)


def run(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    with session_scope() as db:
        if args.command == "cleanup":
            deleted = cleanup_old_jobs(db, older_than_days=args.older_than_days)
            print(f"Deleted {deleted} completed job(s) older than {args.older_than_days} day(s)")
        elif args.command == "requeue-stale":
            jobs = requeue_stale_jobs(db, stale_after_seconds=args.stale_after_seconds)
            print(f"Requeued {len(jobs)} stale job(s)")
            for job in jobs:
                print(f"- {job.id} {job.job_type} status={job.status} attempts={job.attempts}")
        else:
            for status, count in get_queue_stats(db).items():
                print(f"{status}: {count}")


if __name__ == "__main__":
    configure_logging()
    run()
