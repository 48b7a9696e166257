"""
ReviewWorkflowEngine - Review session over the variation sets of a processed
folder.

Items move between Pending (no committed selection) and Reviewed. Committing
a selection copies the chosen variation out and moves on; redo clears the
item, queues regeneration and moves on without waiting. Redo jobs run on one
background task, strictly in the order they were queued.
"""

import asyncio
import logging
import os
from collections import deque
from typing import Callable, Deque, List, Optional, Set

from .exceptions import ReviewStateError
from .generation_client import GenerationClient
from .layout import from_posix
from .metadata import write_metadata
from .prompts import DEFAULT_REDO_PROMPT
from .review_item import RedoRequest, ReviewItem, ReviewScanResult, ReviewStatus
from .review_scanner import ReviewScanner
from .variation_writer import overwrite_variations


class ReviewWorkflowEngine:
    """
    Cursor, selection commits and the redo queue for one processed folder.
    """

    def __init__(
        self,
        scanner: ReviewScanner,
        client: GenerationClient,
        on_item_refreshed: Optional[Callable[[ReviewItem], None]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize review engine.

        Args:
            scanner: Review scanner owning the review index
            client: Generation client used for redo jobs
            on_item_refreshed: Called with the current item when a redo job
                replaced its variations
            logger: Optional logger instance
        """
        self.scanner = scanner
        self.client = client
        self.on_item_refreshed = on_item_refreshed
        self.logger = logger or logging.getLogger(__name__)

        self.scan_result: Optional[ReviewScanResult] = None
        self.items: List[ReviewItem] = []
        self.current_index: Optional[int] = None

        self._queue: Deque[RedoRequest] = deque()
        self._queued_keys: Set[str] = set()
        self._worker_task: Optional[asyncio.Task] = None
        self._cancel_event = asyncio.Event()
        self.failed_redo_count = 0

    @property
    def processed_folder_path(self) -> str:
        return self.scan_result.processed_folder_path if self.scan_result else ''

    @property
    def selection_folder_path(self) -> str:
        return self.scan_result.selection_folder_path if self.scan_result else ''

    @property
    def current_item(self) -> Optional[ReviewItem]:
        if self.current_index is None or not 0 <= self.current_index < len(self.items):
            return None
        return self.items[self.current_index]

    @property
    def redo_active(self) -> bool:
        worker_running = self._worker_task is not None and not self._worker_task.done()
        return worker_running or bool(self._queue)

    def status(self) -> ReviewStatus:
        """Snapshot of counts, cursor and redo queue."""
        reviewed = sum(1 for item in self.items if item.is_reviewed)
        current = self.current_item
        return ReviewStatus(
            total=len(self.items),
            reviewed=reviewed,
            pending=len(self.items) - reviewed,
            current_index=self.current_index,
            current_relative_path=current.relative_source_path if current else None,
            redo_queue_length=len(self._queue),
            redo_active=self.redo_active,
        )

    async def load_folder(self, processed_folder_path: str) -> ReviewScanResult:
        """
        Switch the session to a processed folder.

        Queued and in-flight redo work for the previous folder is cancelled.
        The cursor lands on the first pending item, or the first item when
        everything is reviewed.
        """
        self.cancel_redo_work()
        self.failed_redo_count = 0
        self.scan_result = None
        self.items = []
        self.current_index = None

        self.logger.info(f"Scanning processed folder: {processed_folder_path}")
        result = await asyncio.to_thread(self.scanner.scan, processed_folder_path)

        self.scan_result = result
        self.items = result.items
        if not self.items:
            self.logger.warning("No processed image sets (variation_1..N) were found in this folder.")
            return result

        self.logger.info(f"Selections will be saved to: {result.selection_folder_path}")
        first_pending = next((i for i, item in enumerate(self.items) if not item.is_reviewed), None)
        self.current_index = first_pending if first_pending is not None else 0
        return result

    def move_to(self, relative_source_path: str) -> ReviewItem:
        """
        Place the cursor on an item by its relative source path.

        Raises:
            KeyError: If no item has that path
        """
        wanted = relative_source_path.replace('\\', '/').strip('/').casefold()
        for index, item in enumerate(self.items):
            if item.relative_source_path.casefold() == wanted:
                self.current_index = index
                return item
        raise KeyError(f"No review item for {relative_source_path}")

    def find_next_pending(self, after_index: Optional[int]) -> Optional[int]:
        """
        Next pending index after `after_index`, wrapping to the start.

        Other items are preferred; the item at `after_index` is returned only
        when it is the last one still pending.
        """
        start = 0 if after_index is None else after_index + 1
        for index in list(range(start, len(self.items))) + list(range(0, start)):
            if index != after_index and not self.items[index].is_reviewed:
                return index
        if after_index is not None and 0 <= after_index < len(self.items):
            if not self.items[after_index].is_reviewed:
                return after_index
        return None

    def advance(self) -> Optional[ReviewItem]:
        """Move the cursor to the next pending item (None when all are reviewed)."""
        self.current_index = self.find_next_pending(self.current_index)
        if self.current_index is None and self.items:
            self.logger.info("All review items are reviewed. Add new outputs or use redo to continue.")
        return self.current_item

    def _require_current(self) -> ReviewItem:
        item = self.current_item
        if item is None:
            raise ReviewStateError("No review item is selected")
        return item

    async def commit_selection(
        self,
        selected_index: int,
        notes: str = '',
        transparency: bool = False
    ) -> str:
        """
        Commit a variation of the current item and advance.

        Args:
            selected_index: 1-based variation index
            notes: Reviewer notes
            transparency: Reviewer flag

        Returns:
            Absolute path of the selection copy

        Raises:
            ReviewStateError: If there is no current item
            ValueError: If selected_index is outside 1..variation_count
        """
        item = self._require_current()
        notes = (notes or '').strip()

        relative_output = await asyncio.to_thread(
            self.scanner.copy_selection, self.selection_folder_path, item, selected_index
        )
        destination = from_posix(self.selection_folder_path, relative_output)
        await asyncio.to_thread(write_metadata, destination, notes, transparency, self.logger)
        await asyncio.to_thread(
            self.scanner.save_review_record,
            self.processed_folder_path,
            item,
            selected_index,
            notes,
            transparency,
            relative_output,
        )

        item.is_reviewed = True
        item.selected_index = selected_index
        item.notes = notes
        item.transparency = transparency
        item.selected_output_relative_path = relative_output

        self.logger.info(f"Saved selection for {item.relative_source_path} to {destination}")
        self.advance()
        return destination

    async def redo(
        self,
        prompt: Optional[str] = None,
        image_size: Optional[str] = None
    ) -> bool:
        """
        Queue regeneration of the current item and advance immediately.

        Returns:
            True if a request was queued, False if one was already waiting
            or the folder changed before it could be queued

        Raises:
            ReviewStateError: If there is no current item
        """
        item = self._require_current()
        request = RedoRequest(
            item=item,
            prompt=(prompt or DEFAULT_REDO_PROMPT).strip(),
            image_size=image_size or self.client.config.image_size,
            processed_folder_path=self.processed_folder_path,
        )

        if request.key in self._queued_keys:
            self.logger.info(f"Redo already queued for {item.relative_source_path}, ignoring")
            self.advance()
            return False

        cancel_event = self._cancel_event
        item.clear_selection()
        await asyncio.to_thread(
            self.scanner.clear_review_record, request.processed_folder_path, item.relative_source_path
        )
        if cancel_event.is_set():
            self.logger.info(f"Folder changed, dropping redo for {item.relative_source_path}")
            return False

        self._queue.append(request)
        self._queued_keys.add(request.key)
        self.logger.info(f"Queued redo for {item.relative_source_path}.")
        self._ensure_worker()
        self.advance()
        return True

    def cancel_redo_work(self) -> None:
        """Drop queued redo requests and signal the running job to discard its result."""
        if self._queue or self._worker_task is not None:
            self.logger.info(f"Cancelling redo work ({len(self._queue)} queued)")
        self._cancel_event.set()
        self._queue.clear()
        self._queued_keys.clear()
        self._cancel_event = asyncio.Event()
        self._worker_task = None

    async def wait_for_redo_queue(self) -> None:
        """Wait until the redo queue is drained."""
        while self._worker_task is not None:
            task = self._worker_task
            await asyncio.wait({task})
            if self._worker_task is task:
                self._worker_task = None

    def _ensure_worker(self) -> None:
        if self._worker_task is not None and not self._worker_task.done():
            return
        self._worker_task = asyncio.create_task(self._run_worker(self._cancel_event))

    async def _run_worker(self, cancel_event: asyncio.Event) -> None:
        try:
            while self._queue and not cancel_event.is_set():
                request = self._queue.popleft()
                self._queued_keys.discard(request.key)
                try:
                    await self._process_redo(request, cancel_event)
                except Exception as e:
                    self.failed_redo_count += 1
                    self.logger.error(f"[Redo] Failed: {request.item.relative_source_path} - {e}")
        finally:
            if self._worker_task is asyncio.current_task():
                self._worker_task = None

    async def _process_redo(self, request: RedoRequest, cancel_event: asyncio.Event) -> None:
        item = request.item
        self.logger.info(f"[Redo] Starting: {item.relative_source_path}")

        if not os.path.isfile(item.original_file_path):
            raise FileNotFoundError(f"Original file for redo was not found: {item.original_file_path}")

        images = await self.client.generate_from_file(
            item.original_file_path, request.prompt, request.image_size
        )
        if cancel_event.is_set():
            self.logger.debug(f"[Redo] Discarding result for {item.relative_source_path} (cancelled)")
            return

        paths = await asyncio.to_thread(
            overwrite_variations, item.variation_folder_path, images, self.logger
        )
        item.variation_file_paths = paths
        item.clear_selection()
        if cancel_event.is_set():
            self.logger.debug(f"[Redo] Folder changed, leaving index untouched for {item.relative_source_path}")
            return
        await asyncio.to_thread(
            self.scanner.clear_review_record, request.processed_folder_path, item.relative_source_path
        )
        self.logger.info(f"[Redo] Completed: {item.relative_source_path}")

        if cancel_event.is_set():
            return
        current = self.current_item
        if (
            current is not None
            and self.on_item_refreshed is not None
            and current.relative_source_path.casefold() == request.key
        ):
            self.on_item_refreshed(current)
