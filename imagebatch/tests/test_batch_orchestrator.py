"""Tests for BatchOrchestrator class."""

import asyncio
import os
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from imagebatch.batch_item import GeneratedImage
from imagebatch.batch_orchestrator import BatchOrchestrator, is_rate_limit_error
from imagebatch.batch_progress import BatchProgress
from imagebatch.change_detector import ChangeDetector
from imagebatch.exceptions import ConfigurationError


class TestIsRateLimitError:
    """Tests for rate-limit detection."""

    def test_signals(self):
        assert is_rate_limit_error('Generation API error (429): Resource exhausted')
        assert is_rate_limit_error('You exceeded your current QUOTA')
        assert is_rate_limit_error('Rate limit reached for requests')

    def test_other_messages(self):
        assert not is_rate_limit_error('Generation API error (500): internal')
        assert not is_rate_limit_error('')


class TestBatchOrchestrator:
    """Tests for BatchOrchestrator class."""

    @pytest.fixture
    def detector(self, batch_store, workflow_config, logger):
        return ChangeDetector(batch_store, workflow_config, logger)

    @pytest.fixture
    def mock_client(self, gen_config, sample_png_bytes):
        client = MagicMock()
        client.config = gen_config
        client.generate_from_file = AsyncMock(return_value=[
            GeneratedImage(sample_png_bytes, 'image/png'),
            GeneratedImage(sample_png_bytes, 'image/png'),
        ])
        return client

    @pytest.fixture
    def mock_sleep(self, mocker):
        return mocker.patch('imagebatch.batch_orchestrator.asyncio.sleep', new=AsyncMock())

    @pytest.mark.asyncio
    async def test_processes_pending_files(self, detector, mock_client, source_folder, logger):
        """Test every pending file is generated, written and indexed."""
        scan = detector.scan(source_folder)
        orchestrator = BatchOrchestrator(detector, mock_client, logger=logger)

        stats = await orchestrator.run(scan, prompt='make it seamless')

        assert stats.processed == 2
        assert stats.errors == 0
        assert stats.images_generated == 4
        assert scan.pending_count == 0
        assert os.path.isfile(os.path.join(scan.output_folder_path, 'wood', 'oak.jpg', 'variation_2.png'))
        assert mock_client.generate_from_file.await_args_list[0].args[1] == 'make it seamless'
        assert detector.scan(source_folder).pending_count == 0

    @pytest.mark.asyncio
    async def test_results_keep_output_paths(self, detector, mock_client, source_folder, logger):
        """Test run results list the written relative paths."""
        scan = detector.scan(source_folder)

        stats = await BatchOrchestrator(detector, mock_client, logger=logger).run(scan)

        assert stats.results[0].original_relative_path == 'brick.png'
        assert stats.results[0].output_relative_paths == [
            'brick.png/variation_1.png',
            'brick.png/variation_2.png',
        ]

    @pytest.mark.asyncio
    async def test_failure_does_not_abort(self, detector, mock_client, source_folder, sample_png_bytes, logger):
        """Test a failed file is recorded and the run continues."""
        mock_client.generate_from_file.side_effect = [
            RuntimeError('boom'),
            [GeneratedImage(sample_png_bytes, 'image/png')],
        ]
        scan = detector.scan(source_folder)

        stats = await BatchOrchestrator(detector, mock_client, logger=logger).run(scan)

        assert stats.processed == 1
        assert stats.errors == 1
        assert stats.failed_items == ['brick.png']
        assert 'boom' in stats.error_details[0]
        assert [f.relative_path for f in detector.scan(source_folder).pending_files] == ['brick.png']

    @pytest.mark.asyncio
    async def test_rate_limit_cools_down(self, detector, mock_client, source_folder, sample_png_bytes, workflow_config, mock_sleep, logger):
        """Test a quota error pauses for the cooldown before the next file."""
        config = replace(workflow_config, item_delay=1.0, rate_limit_cooldown=10.0)
        mock_client.generate_from_file.side_effect = [
            RuntimeError('Generation API error (429): quota exhausted'),
            [GeneratedImage(sample_png_bytes, 'image/png')],
        ]
        scan = detector.scan(source_folder)

        stats = await BatchOrchestrator(detector, mock_client, config=config, logger=logger).run(scan)

        assert stats.cooldowns == 1
        assert stats.errors == 1
        assert stats.failed_items == ['brick.png']
        assert stats.processed == 1
        delays = [call.args[0] for call in mock_sleep.await_args_list]
        assert delays == [10.0, 1.0]

    @pytest.mark.asyncio
    async def test_item_delay_between_files(self, detector, mock_client, source_folder, workflow_config, mock_sleep, logger):
        """Test the fixed delay is applied between files only."""
        config = replace(workflow_config, item_delay=1.0)
        scan = detector.scan(source_folder)

        await BatchOrchestrator(detector, mock_client, config=config, logger=logger).run(scan)

        assert [call.args[0] for call in mock_sleep.await_args_list] == [1.0]

    @pytest.mark.asyncio
    async def test_dry_run(self, detector, mock_client, source_folder, logger):
        """Test dry run lists files without calling the service."""
        scan = detector.scan(source_folder)

        stats = await BatchOrchestrator(detector, mock_client, dry_run=True, logger=logger).run(scan)

        assert stats.processed == 2
        mock_client.generate_from_file.assert_not_called()
        assert scan.pending_count == 2

    @pytest.mark.asyncio
    async def test_stop_before_start(self, detector, mock_client, source_folder, logger):
        """Test a stop request before the run does nothing."""
        scan = detector.scan(source_folder)
        orchestrator = BatchOrchestrator(detector, mock_client, logger=logger)
        orchestrator.stop()

        stats = await orchestrator.run(scan)

        assert stats.stopped is True
        mock_client.generate_from_file.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_event_halts_between_files(self, detector, mock_client, source_folder, logger):
        """Test an external cancel event stops the run after the current file."""
        cancel = asyncio.Event()
        progress = BatchProgress(logger=logger)
        progress.on_progress_update = lambda stats: cancel.set()
        scan = detector.scan(source_folder)

        stats = await BatchOrchestrator(detector, mock_client, logger=logger).run(
            scan, progress=progress, cancel_event=cancel
        )

        assert stats.processed == 1
        assert stats.stopped is True
        assert mock_client.generate_from_file.await_count == 1

    @pytest.mark.asyncio
    async def test_limit(self, detector, mock_client, source_folder, logger):
        """Test limit caps the number of files."""
        scan = detector.scan(source_folder)

        stats = await BatchOrchestrator(detector, mock_client, logger=logger).run(scan, limit=1)

        assert stats.total_to_process == 1
        assert mock_client.generate_from_file.await_count == 1

    @pytest.mark.asyncio
    async def test_output_format_conversion(self, detector, mock_client, source_folder, workflow_config, logger):
        """Test outputs are converted to the configured format."""
        config = replace(workflow_config, output_format='jpeg')
        scan = detector.scan(source_folder)

        await BatchOrchestrator(detector, mock_client, config=config, logger=logger).run(scan, limit=1)

        folder = os.path.join(scan.output_folder_path, 'brick.png')
        assert sorted(os.listdir(folder)) == ['variation_1.jpg', 'variation_2.jpg']

    @pytest.mark.asyncio
    async def test_missing_api_key(self, detector, mock_client, source_folder, gen_config, logger):
        """Test a missing key fails the run before any file."""
        mock_client.config = replace(gen_config, api_key=None)
        scan = detector.scan(source_folder)

        with pytest.raises(ConfigurationError):
            await BatchOrchestrator(detector, mock_client, logger=logger).run(scan)
        mock_client.generate_from_file.assert_not_called()

    @pytest.mark.asyncio
    async def test_nothing_pending(self, detector, mock_client, source_folder, logger):
        """Test an up-to-date folder needs no work."""
        scan = detector.scan(source_folder)
        for item in scan.files:
            item.is_processed = True

        stats = await BatchOrchestrator(detector, mock_client, logger=logger).run(scan)

        assert stats.total_to_process == 0
        mock_client.generate_from_file.assert_not_called()
