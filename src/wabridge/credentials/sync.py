import asyncio
import logging

from wabridge.credentials.cache import LocalCredentialCache
from wabridge.credentials.store import CredentialStore, DurablePersistenceError

logger = logging.getLogger(__name__)


class HybridCredentialSynchronizer:
    """
    Keeps the local credential cache and the durable store in step.

    The local cache is written synchronously and is what the session runs from. The durable store
    receives a copy of the whole cache in the background after each change. Pushes are coalesced:
    at most one push runs at a time, and changes made while it runs trigger one more push. A push
    always reads the cache as it is when the push starts.

    Durable store failures are logged and never affect the local side.

    :param cache        the LocalCredentialCache
    :param store        the CredentialStore, or None to run local-only
    """

    def __init__(self, cache: LocalCredentialCache, store: CredentialStore = None):
        self.cache = cache
        self.store = store
        self._push_task = None
        self._dirty = False

    async def load_or_restore(self) -> dict:
        """
        Retrieves the local credentials. When there are none, the durable copy, if any, is
        first restored into the local cache.
        """
        local = self.cache.read_all()
        if local or self.store is None:
            return local
        try:
            remote = await self.store.load()
        except DurablePersistenceError as e:
            logger.warning("unable to restore credentials from durable store, continuing without: %s" % e)
            return local
        if not remote:
            logger.info("no stored credentials, a new session will be created")
            return {}
        if not self.cache.is_empty():
            # the library wrote credentials while the store was being read
            logger.info("local credentials appeared during restore, keeping them")
            return self.cache.read_all()
        self.cache.replace_all(remote)
        return self.cache.read_all()

    def persist(self, changes):
        """
        Records credential changes made by the protocol library. The local write completes before this
        method returns; the durable copy is updated in the background.
        """
        self.cache.write(changes)
        self.schedule_push()

    def schedule_push(self, delay=0.0):
        """ requests a background push of the current local credentials to the durable store. """
        if self.store is None:
            return
        self._dirty = True
        if self._push_task is None or self._push_task.done():
            self._push_task = asyncio.ensure_future(self._push_loop(delay))

    @property
    def push_pending(self):
        return self._push_task is not None and not self._push_task.done()

    async def _push_loop(self, delay):
        if delay:
            await asyncio.sleep(delay)
        while self._dirty:
            self._dirty = False
            try:
                await self.push_now()
            except DurablePersistenceError as e:
                logger.warning("credential sync failed, will retry on next change: %s" % e)

    async def push_now(self):
        """
        Pushes the current local credentials to the durable store.
        Raises DurablePersistenceError if the store fails.
        :return: the number of slots pushed
        """
        if self.store is None:
            raise DurablePersistenceError("no durable credential store configured")
        credentials = self.cache.read_all()
        if not credentials:
            logger.debug("no local credentials, nothing to push")
            return 0
        await self.store.save(credentials)
        logger.info("synchronized %d credential slots to durable store" % len(credentials))
        return len(credentials)

    async def invalidate(self):
        """
        Discards the credentials, locally and in the durable store. The durable delete is best effort.
        """
        await self._cancel_push()
        self.cache.clear()
        if self.store is None:
            return
        try:
            await self.store.delete()
            logger.info("deleted credentials from durable store")
        except DurablePersistenceError as e:
            logger.warning("unable to delete credentials from durable store: %s" % e)

    async def _cancel_push(self):
        task, self._push_task = self._push_task, None
        self._dirty = False
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def close(self):
        await self._cancel_push()
