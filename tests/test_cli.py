"""Tests for the command line interface"""

import json
import os
import tempfile
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from dive_importer.cli import main
from dive_importer.photo_scanner import ScannedPhoto


LOG = b'''<divelog program='subsurface' version='3'><dives>
<dive number='1' date='2024-01-15' time='09:00:00' duration='45:00 min'>
  <divecomputer><depth max='18.2 m' mean='9.0 m' />
  <sample time='0:10 min' depth='3.0 m' /></divecomputer>
</dive>
<dive number='2' date='2024-01-16' time='10:00:00' duration='50:30 min'>
  <divecomputer><depth max='21.0 m' mean='11.0 m' /></divecomputer>
</dive>
</dives></divelog>'''


class TestCli:

    def create_test_file(self, content, suffix='.ssrf'):
        temp_file = tempfile.NamedTemporaryFile(mode='wb', suffix=suffix, delete=False)
        temp_file.write(content)
        temp_file.close()
        return temp_file.name

    def test_import_log_summary(self):
        file_path = self.create_test_file(LOG)
        try:
            result = CliRunner().invoke(main, ['import-log', file_path])
        finally:
            os.unlink(file_path)

        assert result.exit_code == 0
        assert "Trip: Dive Trip 2024-01-15" in result.output
        assert "Dates: 2024-01-15 - 2024-01-16" in result.output
        assert "Dive #1: 2024-01-15 09:00:00  45:00  max 18.2 m  1 samples" in result.output
        assert "Dive #2: 2024-01-16 10:00:00  50:30  max 21.0 m  0 samples" in result.output

    def test_import_log_json(self):
        file_path = self.create_test_file(LOG)
        try:
            result = CliRunner().invoke(main, ['import-log', '--json', file_path])
        finally:
            os.unlink(file_path)

        assert result.exit_code == 0
        # Log lines may share the captured output
        document = json.loads(result.output[result.output.index('{'):])
        assert document['trip_name'] == 'Dive Trip 2024-01-15'
        assert [d['dive']['dive_number'] for d in document['dives']] == [1, 2]
        assert document['dives'][0]['samples'][0]['depth_m'] == 3.0

    def test_import_log_parse_error(self):
        """Test a malformed log exits with status 1"""
        file_path = self.create_test_file(b'<divelog><dive></divelog>')
        try:
            result = CliRunner().invoke(main, ['import-log', file_path])
        finally:
            os.unlink(file_path)

        assert result.exit_code == 1
        assert "Trip:" not in result.output

    def test_import_log_unsupported_format(self):
        file_path = self.create_test_file(b'dive', suffix='.uddf')
        try:
            result = CliRunner().invoke(main, ['import-log', file_path])
        finally:
            os.unlink(file_path)

        assert result.exit_code == 1

    @patch('dive_importer.cli.PhotoScanner')
    def test_match_photos(self, mock_scanner_class):
        """Test groups are printed with their dive and a summary"""
        mock_scanner = MagicMock()
        mock_scanner.scan_photos.return_value = [
            ScannedPhoto(file_path='/p/a.jpg', filename='a.jpg', capture_time='2024-01-15T09:10:00'),
            ScannedPhoto(file_path='/p/b.jpg', filename='b.jpg', capture_time='2024-01-15T09:30:00'),
            ScannedPhoto(file_path='/p/c.jpg', filename='c.jpg', capture_time='2024-01-16T10:15:00'),
            ScannedPhoto(file_path='/p/d.jpg', filename='d.jpg'),
        ]
        mock_scanner_class.return_value = mock_scanner

        file_path = self.create_test_file(LOG)
        try:
            with tempfile.TemporaryDirectory() as photo_dir:
                result = CliRunner().invoke(main, [
                    'match-photos', '--dive-log', file_path, photo_dir,
                    '--gap-minutes', '30', '--no-recursive', '-e', 'Output'
                ])
                mock_scanner.scan_photos.assert_called_once_with((photo_dir,))
        finally:
            os.unlink(file_path)

        assert result.exit_code == 0
        settings = mock_scanner_class.call_args[0][0]
        assert settings.gap_minutes == 30
        assert settings.recursive is False
        assert settings.excluded_folders == ('Output',)
        assert "2 photos -> Dive #1" in result.output
        assert "1 photos -> Dive #2" in result.output
        assert "Duration: 20 minutes" in result.output
        assert "Photo groups matched: 2" in result.output
        assert "Photos without a dive: 0" in result.output
        assert "Photos without capture time: 1" in result.output

    def test_match_photos_without_dives(self):
        file_path = self.create_test_file(b'<divelog></divelog>')
        try:
            with tempfile.TemporaryDirectory() as photo_dir:
                result = CliRunner().invoke(main, ['match-photos', '-d', file_path, photo_dir])
        finally:
            os.unlink(file_path)

        assert result.exit_code == 1
        assert "SUMMARY" not in result.output
