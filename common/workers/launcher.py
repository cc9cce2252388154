"""
Process entry point for queue workers: telemetry, signals, lifecycle.
"""

import asyncio
import signal
from typing import Optional, Any, Callable

from common.core.otel_axiom_exporter import _initialize_telemetry, get_logger


class WorkerLauncher:
    """Runs a BaseWorker until SIGINT/SIGTERM, then stops it cleanly."""

    def __init__(self):
        self.logger = get_logger(__name__)
        self.worker_instance: Optional[Any] = None
        self._consume_task: Optional[asyncio.Task] = None

    def _request_shutdown(self, signum: int) -> None:
        self.logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        if self._consume_task and not self._consume_task.done():
            self._consume_task.cancel()

    async def _run_worker_async(self, worker_instance: Any, worker_name: str):
        self.worker_instance = worker_instance

        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, self._request_shutdown, signum)

        self.logger.info(f"Starting {worker_name}...")
        self._consume_task = asyncio.create_task(worker_instance.start())
        try:
            await self._consume_task
        except asyncio.CancelledError:
            self.logger.info(f"{worker_name} cancelled")
        except Exception as e:
            self.logger.error(f"Worker failed with error: {e}", exc_info=True)
            raise
        finally:
            await worker_instance.stop()
            self.logger.info("Worker shutdown complete")

    def run(self, worker_factory: Callable[[], Any], worker_name: str):
        """
        Main entry point to run a worker.

        Args:
            worker_factory: Callable creating the worker instance
            worker_name: Human readable name for logging
        """
        _initialize_telemetry()
        self.logger.info(f"Configuring {worker_name}...")
        asyncio.run(self._run_worker_async(worker_factory(), worker_name))
