import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from hamcrest import assert_that, is_, equal_to, empty, calling, raises

from wabridge.credentials.cache import LocalCredentialCache, slot_filename, slot_name


class SlotNameTest(unittest.TestCase):

    def test_round_trip_of_unsafe_names(self):
        for name in ('creds', 'session-1234.0', 'app-state-sync-key/AAAA', 'a:b'):
            assert_that(slot_name(slot_filename(name)), is_(name))

    def test_filename_has_no_separators(self):
        assert_that('/' in slot_filename('a/b'), is_(False))


class LocalCredentialCacheTest(unittest.TestCase):

    def setUp(self):
        self.root = tempfile.mkdtemp()
        self.directory = os.path.join(self.root, 'auth')
        self.sut = LocalCredentialCache(self.directory)

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def test_missing_directory_is_empty(self):
        assert_that(self.sut.is_empty(), is_(True))
        assert_that(self.sut.read_all(), is_(equal_to({})))
        assert_that(self.sut.read('creds'), is_(None))

    def test_write_and_read_binary(self):
        payload = bytes(range(256))
        self.sut.write({'creds': payload, 'pre-key/1': b'\x00\x01'})
        assert_that(self.sut.read('creds'), is_(payload))
        assert_that(self.sut.read_all(), is_(equal_to({'creds': payload, 'pre-key/1': b'\x00\x01'})))
        assert_that(self.sut.slots(), is_(['creds', 'pre-key/1']))

    def test_write_none_removes_slot(self):
        self.sut.write({'a': b'1', 'b': b'2'})
        self.sut.write({'a': None, 'missing': None})
        assert_that(self.sut.read_all(), is_(equal_to({'b': b'2'})))

    def test_no_temporary_files_left(self):
        self.sut.write({'a': b'1'})
        assert_that([f for f in os.listdir(self.directory) if f.endswith('.tmp')], is_(empty()))

    def test_replace_all(self):
        self.sut.write({'old': b'x'})
        self.sut.replace_all({'creds': b'c', 'key': b'k'})
        assert_that(self.sut.read_all(), is_(equal_to({'creds': b'c', 'key': b'k'})))
        assert_that(sorted(os.listdir(self.root)), is_(['auth']))

    def test_replace_all_into_missing_directory(self):
        self.sut.replace_all({'creds': b'c'})
        assert_that(self.sut.read_all(), is_(equal_to({'creds': b'c'})))

    def test_replace_all_is_all_or_nothing(self):
        self.sut.write({'old': b'x'})
        original = self.sut._write_file
        calls = []

        def failing_write(directory, slot, value):
            calls.append(slot)
            if len(calls) == 2:
                raise OSError("disk full")
            original(directory, slot, value)

        with patch.object(self.sut, '_write_file', side_effect=failing_write):
            assert_that(calling(self.sut.replace_all).with_args({'a': b'1', 'b': b'2', 'c': b'3'}),
                        raises(OSError))
        assert_that(self.sut.read_all(), is_(equal_to({'old': b'x'})))
        assert_that(sorted(os.listdir(self.root)), is_(['auth']))

    def test_clear(self):
        self.sut.write({'a': b'1'})
        self.sut.clear()
        assert_that(os.path.exists(self.directory), is_(False))
        assert_that(self.sut.is_empty(), is_(True))
        self.sut.clear()


if __name__ == '__main__':  # pragma no cover
    unittest.main()
