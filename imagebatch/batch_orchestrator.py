"""
BatchOrchestrator - Runs generation over the pending files of a scanned folder.
"""

import asyncio
import logging
from typing import List, Optional

from .batch_item import BatchFileItem, BatchGenerationResult, BatchScanResult
from .batch_progress import BatchProgress
from .batch_stats import BatchStats
from .change_detector import ChangeDetector
from .config import WorkflowConfig
from .generation_client import GenerationClient
from .prompts import DEFAULT_BATCH_PROMPT
from .variation_writer import save_batch_outputs


RATE_LIMIT_SIGNALS = ('429', 'quota', 'rate limit')


def is_rate_limit_error(message: str) -> bool:
    """True if an error message indicates throttling or an exhausted quota."""
    lowered = (message or '').lower()
    return any(signal in lowered for signal in RATE_LIMIT_SIGNALS)


class BatchOrchestrator:
    """
    Processes pending files one at a time.

    Each file fans out inside the generation client; files themselves are
    handled strictly in order with a fixed delay between them. A failed file
    is recorded and the run continues; a rate-limit failure adds a longer
    cooldown first.
    """

    def __init__(
        self,
        detector: ChangeDetector,
        client: GenerationClient,
        config: Optional[WorkflowConfig] = None,
        dry_run: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize orchestrator.

        Args:
            detector: Change detector owning the batch index
            client: Generation client
            config: Workflow configuration (delays, output format)
            dry_run: If True, list pending files without calling the service
            logger: Optional logger instance
        """
        self.detector = detector
        self.client = client
        self.config = config or detector.config
        self.dry_run = dry_run
        self.logger = logger or logging.getLogger(__name__)
        self.stats = BatchStats()
        self._stop_requested = False

    def stop(self) -> None:
        """Request the run to stop after the current file."""
        self._stop_requested = True

    def _should_stop(self, cancel_event: Optional[asyncio.Event]) -> bool:
        return self._stop_requested or (cancel_event is not None and cancel_event.is_set())

    async def run(
        self,
        scan: BatchScanResult,
        prompt: Optional[str] = None,
        image_size: Optional[str] = None,
        progress: Optional[BatchProgress] = None,
        limit: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> BatchStats:
        """
        Generate variations for every pending file of a scan.

        Args:
            scan: Result of ChangeDetector.scan
            prompt: Instruction for the model (default: DEFAULT_BATCH_PROMPT)
            image_size: Size class (default: client configuration)
            progress: Optional progress tracker
            limit: Optional maximum number of files to process
            cancel_event: Optional event that halts the run between files

        Returns:
            BatchStats with results

        Raises:
            ConfigurationError: If no API key is configured (before any file)
        """
        pending = scan.pending_files
        if limit:
            pending = pending[:limit]

        self.stats = BatchStats(total_to_process=len(pending))

        if self._should_stop(cancel_event):
            self.logger.info("Stop was requested before the batch started")
            self.stats.stopped = True
            return self.stats

        if not pending:
            self.logger.info("No new files to process. Batch is already up to date.")
            return self.stats

        if not self.dry_run:
            self.client.config.require_api_key()

        prompt = (prompt or DEFAULT_BATCH_PROMPT).strip()
        mode_str = " [DRY RUN]" if self.dry_run else ""
        self.logger.info(f"Starting batch: {len(pending)} pending file(s){mode_str}")
        self.logger.info(f"Output folder: {scan.output_folder_path}")

        total = len(pending)
        for index, item in enumerate(pending, start=1):
            if self._should_stop(cancel_event):
                self.logger.info("Stop requested, halting batch")
                self.stats.stopped = True
                break

            self.stats.current = index

            if self.dry_run:
                self._dry_run_item(item, progress)
                continue

            if progress:
                progress.on_item_started(item, index, total)
            error = await self._process_item(scan, item, prompt, image_size, index, total, progress)

            if progress:
                progress.on_progress_update(self.stats)

            if error is not None and is_rate_limit_error(error):
                self.stats.cooldowns += 1
                if progress:
                    progress.on_cooldown(self.config.rate_limit_cooldown, error)
                else:
                    self.logger.warning(
                        f"Rate limit/quota detected. Pausing for {self.config.rate_limit_cooldown:.0f}s to cool down..."
                    )
                await asyncio.sleep(self.config.rate_limit_cooldown)

            if index < total and self.config.item_delay > 0:
                await asyncio.sleep(self.config.item_delay)

        self.logger.info(
            f"Batch complete: {self.stats.processed} of {total} processed, "
            f"{self.stats.errors} errors ({self.stats.elapsed_seconds:.1f}s)"
        )
        return self.stats

    def _dry_run_item(self, item: BatchFileItem, progress: Optional[BatchProgress]) -> None:
        if progress:
            progress.on_dry_run(item)
        else:
            self.logger.info(f"[DRY RUN] Would generate: {item.relative_path}")
        self.stats.processed += 1

    async def _process_item(
        self,
        scan: BatchScanResult,
        item: BatchFileItem,
        prompt: str,
        image_size: Optional[str],
        index: int,
        total: int,
        progress: Optional[BatchProgress]
    ) -> Optional[str]:
        """Process one file. Returns the error message, or None on success."""
        try:
            self.logger.info(f"[{index}/{total}] Processing: {item.relative_path}...")
            images = await self.client.generate_from_file(item.full_path, prompt, image_size)

            output_paths: List[str] = await asyncio.to_thread(
                save_batch_outputs,
                scan.output_folder_path,
                item,
                images,
                self.config.output_format,
                self.logger,
            )
            await asyncio.to_thread(self.detector.mark_processed, scan, item, output_paths)

            result = BatchGenerationResult(
                original_name=item.name,
                original_relative_path=item.relative_path,
                images=images,
                output_relative_paths=output_paths,
            )
            self.stats.record_success(result)

            if progress:
                progress.on_file_processed(item, success=True, image_count=len(images))
            self.logger.info(f"[{index}/{total}] Success: {item.relative_path}")
            return None

        except Exception as e:
            self.logger.error(f"[{index}/{total}] Failed: {item.relative_path} - {e}")
            self.stats.record_failure(item.relative_path, str(e))
            if progress:
                progress.on_file_processed(item, success=False, error=str(e))
            return str(e) or type(e).__name__
