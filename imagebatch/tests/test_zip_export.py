"""Tests for batch ZIP export."""

import io
import zipfile

from imagebatch.batch_item import BatchGenerationResult, GeneratedImage
from imagebatch.zip_export import build_batch_zip, entry_base_path, write_batch_zip


def _names(data):
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return sorted(archive.namelist())


class TestZipExport:
    """Tests for ZIP export."""

    def test_entry_base_path(self):
        result = BatchGenerationResult('wood/oak.jpg', 'wood/oak.jpg')
        assert entry_base_path(result) == 'wood/oak.jpg'

    def test_unsafe_directory_segments(self):
        result = BatchGenerationResult('a?.png', 'set:1\\ /a?.png')
        assert entry_base_path(result) == 'set_1/a_.png'

    def test_layout(self, sample_png_bytes, sample_jpeg_bytes, logger):
        """Test one folder per source file with numbered variations."""
        results = [
            BatchGenerationResult('brick.png', 'brick.png', [
                GeneratedImage(sample_png_bytes, 'image/png'),
                GeneratedImage(sample_jpeg_bytes, 'image/jpeg'),
            ]),
            BatchGenerationResult('wood/oak.jpg', 'wood/oak.jpg', [GeneratedImage(sample_png_bytes, 'image/png')]),
        ]

        data = build_batch_zip(results, logger=logger)

        assert _names(data) == [
            'brick.png/variation_1.png',
            'brick.png/variation_2.jpg',
            'wood/oak.jpg/variation_1.png',
        ]

    def test_converts_format(self, sample_png_bytes, logger):
        results = [BatchGenerationResult('brick.png', 'brick.png', [GeneratedImage(sample_png_bytes, 'image/png')])]

        data = build_batch_zip(results, 'jpeg', logger)

        assert _names(data) == ['brick.png/variation_1.jpg']

    def test_empty(self, logger):
        assert _names(build_batch_zip([], logger=logger)) == []

    def test_write(self, tmp_path, sample_png_bytes, logger):
        results = [BatchGenerationResult('brick.png', 'brick.png', [GeneratedImage(sample_png_bytes, 'image/png')])]
        path = str(tmp_path / 'out.zip')

        assert write_batch_zip(path, results, logger=logger) == path
        assert zipfile.is_zipfile(path)
