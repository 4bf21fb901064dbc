import logging
import os
import shutil
import tempfile
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)

slot_extension = '.bin'


def slot_filename(slot):
    """
    Maps a slot name to a file name. Any character that is not safe in a file name is escaped.

    >>> slot_filename('creds')
    'creds.bin'
    >>> slot_filename('pre-key/12:3')
    'pre-key%2F12%3A3.bin'
    """
    return quote(slot, safe='') + slot_extension


def slot_name(filename):
    """
    >>> slot_name('pre-key%2F12%3A3.bin')
    'pre-key/12:3'
    """
    return unquote(filename[:-len(slot_extension)])


class LocalCredentialCache:
    """
    Stores each credential slot as a file in a directory. The file holds the slot bytes unchanged.

    Each file is written to a temporary name and renamed into place, so a slot is either the old
    or the new value, never a partial write.
    """

    def __init__(self, directory):
        self.directory = directory

    def _path(self, slot):
        return os.path.join(self.directory, slot_filename(slot))

    def is_empty(self):
        return not self.slots()

    def slots(self):
        if not os.path.isdir(self.directory):
            return []
        return sorted(slot_name(f) for f in os.listdir(self.directory) if f.endswith(slot_extension))

    def read(self, slot):
        try:
            with open(self._path(slot), 'rb') as f:
                return f.read()
        except FileNotFoundError:
            return None

    def read_all(self) -> dict:
        result = {}
        for slot in self.slots():
            value = self.read(slot)
            if value is not None:
                result[slot] = value
        return result

    def write(self, changes):
        """
        Applies changes to the cache. Slots mapped to None are removed.
        :param changes: mapping of slot name to bytes, or None
        """
        os.makedirs(self.directory, exist_ok=True)
        for slot, value in changes.items():
            if value is None:
                self._remove(slot)
            else:
                self._write_file(self.directory, slot, value)

    def _write_file(self, directory, slot, value):
        fd, tmp = tempfile.mkstemp(dir=directory, suffix='.tmp')
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(bytes(value))
            os.replace(tmp, os.path.join(directory, slot_filename(slot)))
        except BaseException:
            os.unlink(tmp)
            raise

    def _remove(self, slot):
        try:
            os.unlink(self._path(slot))
        except FileNotFoundError:
            pass

    def replace_all(self, credentials):
        """
        Replaces the whole cache with the given credentials, all or nothing.
        The slots are written to a staging directory which is then swapped in for the cache directory.
        """
        parent = os.path.dirname(os.path.abspath(self.directory))
        os.makedirs(parent, exist_ok=True)
        staging = tempfile.mkdtemp(dir=parent, prefix='.restore-')
        try:
            for slot, value in credentials.items():
                self._write_file(staging, slot, value)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        previous = None
        if os.path.exists(self.directory):
            previous = tempfile.mkdtemp(dir=parent, prefix='.discard-')
            os.rmdir(previous)
            os.rename(self.directory, previous)
        os.rename(staging, self.directory)
        if previous:
            shutil.rmtree(previous, ignore_errors=True)
        logger.info("restored %d credential slots into %s" % (len(credentials), self.directory))

    def clear(self):
        if os.path.isdir(self.directory):
            shutil.rmtree(self.directory)
            logger.info("cleared local credentials in %s" % self.directory)
