import asyncio
import base64
import logging

import aiohttp

logger = logging.getLogger(__name__)


class DurablePersistenceError(Exception):
    """ The durable credential store could not be read or written. """


def encode_credentials(credentials):
    return {slot: base64.b64encode(bytes(value)).decode('ascii') for slot, value in credentials.items()}


def decode_credentials(encoded):
    try:
        return {slot: base64.b64decode(value, validate=True) for slot, value in encoded.items()}
    except (ValueError, TypeError, AttributeError) as e:
        raise DurablePersistenceError("malformed credentials from store: %s" % e) from e


class CredentialStore:
    """
    Client for the remote credential store endpoint.

    Every call POSTs ``{action, serverName, credentials?}`` as JSON, where action is one of
    save, get or delete. Slot values travel base64 encoded. A get answers ``{credentials: {...}}``,
    with credentials null or absent when nothing is stored for the server.
    """

    def __init__(self, session: aiohttp.ClientSession, url, server_name, secret=None, timeout=15.0):
        self.session = session
        self.url = url
        self.server_name = server_name
        self.secret = secret
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def _call(self, action, **extra):
        body = dict(action=action, serverName=self.server_name, **extra)
        headers = {'Authorization': 'Bearer %s' % self.secret} if self.secret else None
        try:
            async with self.session.post(self.url, json=body, headers=headers, timeout=self.timeout) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise DurablePersistenceError("credential store %s failed with HTTP %d: %s"
                                                  % (action, response.status, text[:200]))
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise DurablePersistenceError("credential store %s failed: %s" % (action, e)) from e
        except asyncio.TimeoutError as e:
            raise DurablePersistenceError("credential store %s timed out" % action) from e
        except ValueError as e:
            raise DurablePersistenceError("credential store %s returned invalid JSON" % action) from e

    async def save(self, credentials):
        await self._call('save', credentials=encode_credentials(credentials))
        logger.debug("saved %d credential slots for %s" % (len(credentials), self.server_name))

    async def load(self) -> dict:
        """
        :return: the stored credentials, or an empty dict if there are none.
        """
        result = await self._call('get') or {}
        encoded = result.get('credentials') if isinstance(result, dict) else None
        if not encoded:
            return {}
        if not isinstance(encoded, dict):
            raise DurablePersistenceError("malformed credentials from store")
        return decode_credentials(encoded)

    async def delete(self):
        await self._call('delete')
        logger.debug("deleted stored credentials for %s" % self.server_name)
