import asyncio
import logging
import signal

from paygsite.application.jobs.handlers import JOB_HANDLERS
from paygsite.application.jobs.worker import WorkerOptions, create_worker
from paygsite.domain import models  # noqa: F401
from paygsite.infrastructure.logging.bootstrap import configure_logging

logger = logging.getLogger(__name__)


async def run_worker(options: WorkerOptions | None = None) -> None:
    worker = create_worker(JOB_HANDLERS, options or WorkerOptions.from_settings())
    loop = asyncio.get_running_loop()
    stop_task: asyncio.Task | None = None

    def _request_stop(signame: str) -> None:
        nonlocal stop_task
        if stop_task is not None:
            return
        logger.info("worker_shutdown_requested signal=%s", signame)
        stop_task = asyncio.create_task(worker.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _request_stop, sig.name)

    logger.info("worker_boot registered_job_types=%s", ",".join(worker.registered_job_types))
    await worker.start()
    await worker.run_until_stopped()
    if stop_task is not None:
        await stop_task


def main() -> None:
    configure_logging()
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
