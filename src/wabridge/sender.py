import logging

from wabridge.addressing import canonical_address

logger = logging.getLogger(__name__)


class OutboundSender:
    """
    Sends messages through the open session.

    Raises NotConnectedError when the session is not open, and InvalidAddressError when the address cannot be
    understood. Errors from the protocol library are passed to the caller as they are.
    """

    def __init__(self, controller):
        self.controller = controller

    async def send(self, address, text):
        socket = self.controller.require_socket()
        address = canonical_address(address)
        await socket.send_text(address, text)
        logger.info("message sent to %s" % address)

    async def send_image(self, address, url, caption=None):
        socket = self.controller.require_socket()
        address = canonical_address(address)
        await socket.send_image(address, url, caption)
        logger.info("image sent to %s" % address)
