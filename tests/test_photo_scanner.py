"""Tests for photo_scanner module"""

import os
import tempfile
from unittest.mock import MagicMock

import pytest

from dive_importer.config import ScanSettings
from dive_importer.exif_backends import TagValue
from dive_importer.exif_resolver import ExifFields, ExifFusionResolver
from dive_importer.photo_scanner import (
    PhotoScanner, extract_raw_preview, find_embedded_jpeg,
    is_image_file, is_processed_file, is_raw_file
)


def jpeg(payload_size):
    return b'\xff\xd8' + b'\x11' * payload_size + b'\xff\xd9'


def fake_resolver(times):
    """Resolver returning the capture time mapped to each file name"""
    resolver = MagicMock()
    resolver.resolve.side_effect = lambda path: ExifFields(
        capture_time=times.get(os.path.basename(path)),
        camera_model='TG-7'
    )
    return resolver


def touch(path, content='test'):
    with open(path, 'w') as f:
        f.write(content)


class TestFileTypes:

    @pytest.mark.parametrize('name', ['a.jpg', 'a.JPEG', 'a.png', 'a.tif', 'a.cr3', 'a.NEF', 'a.rw2'])
    def test_supported_extensions(self, name):
        assert is_image_file(name)

    @pytest.mark.parametrize('name', ['a.txt', 'a.mp4', 'a.raf', 'jpg'])
    def test_unsupported_extensions(self, name):
        assert not is_image_file(name)

    def test_processed_and_raw(self):
        assert is_processed_file('edit.TIFF')
        assert is_processed_file('edit.png')
        assert not is_processed_file('photo.jpg')
        assert is_raw_file('photo.ARW')
        assert not is_raw_file('photo.raf')
        assert not is_raw_file('photo.jpg')
        assert not is_raw_file('edit.tif')


class TestFindImages:

    def test_find_images(self):
        """Test finding images in directory"""
        with tempfile.TemporaryDirectory() as temp_dir:
            jpg_file = os.path.join(temp_dir, 'test.jpg')
            cr3_file = os.path.join(temp_dir, 'test.cr3')
            txt_file = os.path.join(temp_dir, 'test.txt')

            for file_path in [jpg_file, cr3_file, txt_file]:
                touch(file_path)

            images = PhotoScanner().find_images(temp_dir)

            assert images == sorted([jpg_file, cr3_file])

    def test_find_images_nonexistent_directory(self):
        with pytest.raises(FileNotFoundError, match="Directory not found"):
            PhotoScanner().find_images('/nonexistent/directory')

    def test_find_images_with_folder_exclusion(self):
        """Test excluded folder names are skipped at any depth"""
        with tempfile.TemporaryDirectory() as temp_dir:
            normal_dir = os.path.join(temp_dir, 'Normal')
            output_dir = os.path.join(temp_dir, 'Output')
            nested_cache = os.path.join(normal_dir, 'Cache')
            for directory in [normal_dir, output_dir, nested_cache]:
                os.makedirs(directory)

            jpg_file = os.path.join(temp_dir, 'test.jpg')
            normal_jpg = os.path.join(normal_dir, 'normal.jpg')
            output_jpg = os.path.join(output_dir, 'output.jpg')
            cache_jpg = os.path.join(nested_cache, 'cache.jpg')
            for file_path in [jpg_file, normal_jpg, output_jpg, cache_jpg]:
                touch(file_path)

            scanner = PhotoScanner(ScanSettings(excluded_folders=('Output', 'Cache')))
            images = scanner.find_images(temp_dir)

            assert len(images) == 2
            assert jpg_file in images
            assert normal_jpg in images

    def test_find_images_recursive_vs_nonrecursive(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            sub_dir = os.path.join(temp_dir, 'sub')
            os.makedirs(sub_dir)
            root_jpg = os.path.join(temp_dir, 'root.jpg')
            sub_jpg = os.path.join(sub_dir, 'sub.jpg')
            touch(root_jpg)
            touch(sub_jpg)

            assert PhotoScanner(ScanSettings(recursive=False)).find_images(temp_dir) == [root_jpg]
            assert PhotoScanner(ScanSettings(recursive=True)).find_images(temp_dir) == [root_jpg, sub_jpg]


class TestEmbeddedJpeg:

    def test_largest_jpeg_wins(self):
        """Test the largest JPEG above the minimum size is returned"""
        preview = jpeg(20_000)
        data = b'\x00' * 2000 + jpeg(100) + b'\x00' * 50 + preview + b'\x00' * 10 + jpeg(15_000)

        assert find_embedded_jpeg(data) == preview

    def test_only_thumbnails(self):
        data = b'\x00' * 2000 + jpeg(500) + jpeg(9_000)
        assert find_embedded_jpeg(data) is None

    def test_short_data(self):
        assert find_embedded_jpeg(jpeg(500)) is None

    def test_scan_limit(self):
        data = b'\x00' * 5000 + jpeg(20_000)
        assert find_embedded_jpeg(data, scan_limit=4000) is None
        assert find_embedded_jpeg(data, scan_limit=6000) == jpeg(20_000)

    def test_unterminated_jpeg(self):
        data = b'\x00' * 2000 + b'\xff\xd8' + b'\x11' * 20_000
        assert find_embedded_jpeg(data) is None

    def test_extract_raw_preview(self):
        preview = jpeg(12_000)
        temp_file = tempfile.NamedTemporaryFile(suffix='.cr2', delete=False)
        temp_file.write(b'II*\x00' + b'\x00' * 3000 + preview + b'\x00' * 100)
        temp_file.close()
        try:
            assert extract_raw_preview(temp_file.name) == preview
            assert extract_raw_preview(temp_file.name, ScanSettings(raw_preview_max_file_size=1000)) is None
        finally:
            os.unlink(temp_file.name)

    def test_extract_raw_preview_only_for_raw_files(self):
        """Test a JPEG or TIFF carrying an embedded JPEG gets no preview"""
        content = b'\x00' * 3000 + jpeg(12_000)
        for suffix in ('.jpg', '.tif'):
            temp_file = tempfile.NamedTemporaryFile(suffix=suffix, delete=False)
            temp_file.write(content)
            temp_file.close()
            try:
                assert extract_raw_preview(temp_file.name) is None
            finally:
                os.unlink(temp_file.name)

    def test_extract_raw_preview_missing_file(self):
        assert extract_raw_preview('/nonexistent/photo.nef') is None


class TestScanPhotos:

    def test_scan_single_file(self):
        temp_file = tempfile.NamedTemporaryFile(suffix='.tif', delete=False)
        temp_file.write(b'x' * 42)
        temp_file.close()
        try:
            resolver = MagicMock()
            resolver.resolve.return_value = ExifFields(
                capture_time='2024-01-15T10:30:00', aperture=5.6, iso=100, gps_latitude=-16.5
            )
            photo = PhotoScanner(resolver=resolver).scan_single_file(temp_file.name)

            assert photo.file_path == temp_file.name
            assert photo.filename == os.path.basename(temp_file.name)
            assert photo.capture_time == '2024-01-15T10:30:00'
            assert photo.aperture == 5.6
            assert photo.iso == 100
            assert photo.gps_latitude == -16.5
            assert photo.file_size_bytes == 42
            assert photo.is_processed is True
        finally:
            os.unlink(temp_file.name)

    def test_scan_single_file_missing(self):
        resolver = MagicMock()
        assert PhotoScanner(resolver=resolver).scan_single_file('/nonexistent/photo.jpg') is None
        resolver.resolve.assert_not_called()

    def test_scan_photos_sorted(self):
        """Test timed photos come first in time order, then untimed by name"""
        times = {
            'b.jpg': '2024-01-15T11:00:00',
            'c.jpg': '2024-01-15T09:00:00',
        }
        with tempfile.TemporaryDirectory() as temp_dir:
            folder = os.path.join(temp_dir, 'day1')
            os.makedirs(folder)
            for name in ['b.jpg', 'z.jpg', 'notes.txt']:
                touch(os.path.join(folder, name))
            single = os.path.join(temp_dir, 'c.jpg')
            untimed = os.path.join(temp_dir, 'a.png')
            touch(single)
            touch(untimed)

            scanner = PhotoScanner(resolver=fake_resolver(times))
            photos = scanner.scan_photos([folder, single, untimed, os.path.join(temp_dir, 'gone.jpg')])

            assert [p.filename for p in photos] == ['c.jpg', 'b.jpg', 'a.png', 'z.jpg']
            assert photos[2].is_processed is True
            assert photos[0].camera_model == 'TG-7'

    def test_corrupt_exif_does_not_stop_scan(self):
        """Test a photo with a corrupt APEX shutter is still scanned"""
        permissive = MagicMock()
        permissive.name = 'permissive'
        permissive.read_tags.return_value = {
            'DateTimeOriginal': TagValue('2024:01:15 10:30:00', '2024:01:15 10:30:00'),
            'ShutterSpeedValue': TagValue('-2147483648/1', '-2147483648/1'),
        }
        strict = MagicMock()
        strict.name = 'strict'
        strict.read_tags.return_value = {}

        with tempfile.TemporaryDirectory() as temp_dir:
            touch(os.path.join(temp_dir, 'bad.jpg'))
            scanner = PhotoScanner(resolver=ExifFusionResolver(permissive=permissive, strict=strict))
            photos = scanner.scan_photos([temp_dir])

        assert len(photos) == 1
        assert photos[0].capture_time == '2024-01-15T10:30:00'
        assert photos[0].shutter_speed is None
