"""
Relays inbound messages to the processing service, and the service's replies back to the sender.

Batches are queued and handled by a single worker, one message at a time, in arrival order.
A failure on one message is logged and the rest of the batch is still processed.
"""
import asyncio
import base64
import logging

import aiohttp

from wabridge.addressing import sender_address, phone_id, is_group, is_broadcast
from wabridge.support.events import QueuedEventSource
from wabridge.support.mixins import CommonEqualityMixin, StringerMixin

logger = logging.getLogger(__name__)

TEXT = 'text'
AUDIO = 'audio'
IMAGE = 'image'
DOCUMENT = 'document'
VIDEO = 'video'

# media whose content is sent along with the message
INLINE_MEDIA = {
    AUDIO: 'audio/ogg; codecs=opus',
    IMAGE: 'image/jpeg',
}


class ProcessorError(Exception):
    """ The processing service could not be reached or answered with an error. """


class InboundMessage(CommonEqualityMixin, StringerMixin):
    """
    A received message in the form the processing service expects.
    :param media_payload    for inline media, a dict with 'base64' and 'mimeType'
    """

    def __init__(self, sender_id, text, display_name='', media_type=TEXT, media_payload=None,
                 recipient_identity=None, reply_to=None):
        self.sender_id = sender_id
        self.text = text
        self.display_name = display_name
        self.media_type = media_type
        self.media_payload = media_payload
        self.recipient_identity = recipient_identity
        self.reply_to = reply_to

    def to_request(self, secret):
        request = {
            'senderId': self.sender_id,
            'text': self.text,
            'displayName': self.display_name,
            'secret': secret,
            'recipientIdentity': self.recipient_identity,
        }
        if self.media_type != TEXT:
            request['mediaType'] = self.media_type
        if self.media_payload is not None:
            request['mediaPayload'] = self.media_payload
        return request


def classify(content):
    """
    Determines the kind of a message and its text.

    >>> classify({'conversation': 'hi'})
    ('text', 'hi', None)
    >>> classify({'imageMessage': {'caption': 'look', 'mimetype': 'image/png'}})
    ('image', 'look', 'image/png')
    >>> classify({'reactionMessage': {}})
    (None, None, None)
    """
    content = content or {}
    if content.get('conversation'):
        return TEXT, content['conversation'], None
    extended = content.get('extendedTextMessage') or {}
    if extended.get('text'):
        return TEXT, extended['text'], None
    for kind in (AUDIO, IMAGE, DOCUMENT, VIDEO):
        media = content.get(kind + 'Message')
        if media is not None:
            text = media.get('caption') or (media.get('fileName') if kind == DOCUMENT else None) or ''
            return kind, text, media.get('mimetype')
    return None, None, None


class ProcessorClient:
    """ Posts messages to the processing service. """

    def __init__(self, session: aiohttp.ClientSession, url, secret, timeout=30.0):
        self.session = session
        self.url = url
        self.secret = secret
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def process(self, message: InboundMessage) -> dict:
        try:
            async with self.session.post(self.url, json=message.to_request(self.secret),
                                         timeout=self.timeout) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise ProcessorError("processor answered HTTP %d: %s" % (response.status, text[:200]))
                result = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise ProcessorError("processor call failed: %s" % e) from e
        except asyncio.TimeoutError as e:
            raise ProcessorError("processor call timed out") from e
        except ValueError as e:
            raise ProcessorError("processor returned invalid JSON") from e
        if not isinstance(result, dict):
            raise ProcessorError("unexpected processor response %r" % (result,))
        return result


class InboundMessageRelay:
    """
    :param controller   the ConnectionController; supplies the account identity and media downloads
    :param sender       the OutboundSender used for replies
    :param processor    the ProcessorClient
    """

    def __init__(self, controller, sender, processor: ProcessorClient):
        self.controller = controller
        self.sender = sender
        self.processor = processor
        self.batches = QueuedEventSource()
        self.batches.add(self.process_batch)
        self._worker = None

    def submit(self, event):
        """ queues a MessagesReceivedEvent for processing """
        if event.kind != 'notify':
            logger.debug("skipping %d %s messages" % (len(event.messages), event.kind))
            return
        self.batches.fire(event.messages)

    def start(self):
        if self._worker is None:
            self._worker = asyncio.ensure_future(self.batches.pump())

    async def stop(self):
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

    async def process_batch(self, messages):
        for raw in messages:
            try:
                await self.process(raw)
            except Exception as e:
                key = (raw.get('key') or {}) if isinstance(raw, dict) else {}
                logger.warning("failed to relay message %s from %s: %s" % (key.get('id'), key.get('remoteJid'), e),
                               exc_info=logger.isEnabledFor(logging.DEBUG))

    async def process(self, raw):
        """
        Relays one message.
        :return: the InboundMessage relayed, or None if the message was skipped
        """
        message = await self.normalize(raw)
        if message is None:
            return None
        logger.info("message from %s (%s)" % (message.sender_id, message.media_type))
        result = await self.processor.process(message)
        reply = result.get('reply')
        if result.get('success') and reply:
            await self.sender.send(message.reply_to, reply)
        return message

    async def normalize(self, raw):
        """
        Converts a raw message into an InboundMessage. Messages sent by this account, group and
        broadcast messages and messages without relayable content give None.
        """
        key = raw.get('key') or {}
        remote = key.get('remoteJid') or ''
        if key.get('fromMe') or not remote or is_group(remote) or is_broadcast(remote):
            return None
        kind, text, mimetype = classify(raw.get('message'))
        if kind is None or (kind == TEXT and not text):
            return None
        address = sender_address(key)
        sender_id = phone_id(address)
        if not sender_id:
            return None
        payload = None
        if kind in INLINE_MEDIA:
            socket = self.controller.require_socket()
            data = await socket.download_media(raw)
            payload = {
                'base64': base64.b64encode(data).decode('ascii'),
                'mimeType': mimetype or INLINE_MEDIA[kind],
            }
        return InboundMessage(sender_id, text, raw.get('pushName') or '', kind, payload,
                              self.controller.state.identity, reply_to=address)
