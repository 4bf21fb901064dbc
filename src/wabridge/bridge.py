"""
Runs the bridge: the connection to the messaging network, the relay to the processing service and the
HTTP control surface, configured from the bridge configuration files and the environment.
"""
import argparse
import asyncio
import logging
import signal

import aiohttp
from aiohttp import web
from configobj import ConfigObj

from wabridge.config.config import load_config, apply_conf
from wabridge.connection import ConnectionController
from wabridge.connector.base import DisconnectPolicy, load_socket_factory
from wabridge.credentials.cache import LocalCredentialCache
from wabridge.credentials.store import CredentialStore
from wabridge.credentials.sync import HybridCredentialSynchronizer
from wabridge.http.api import ControlApi
from wabridge.qr import log_scan_token
from wabridge.relay import ProcessorClient, InboundMessageRelay
from wabridge.sender import OutboundSender
from wabridge.support.retry_strategy import RetryPolicy

logger = logging.getLogger(__name__)


class Bridge:
    """
    Assembles the components from the configuration.
    :param config       the validated bridge configuration
    :param session      the HTTP client session used for the processing service and the credential store
    :param socket_factory   overrides the configured socket factory
    """

    def __init__(self, config: ConfigObj, session: aiohttp.ClientSession, socket_factory=None):
        self.config = config
        server, credentials, retry, socket = config['server'], config['credentials'], config['retry'], config['socket']

        store = None
        if credentials['store_url']:
            store = CredentialStore(session, credentials['store_url'], server['server_name'], server['api_secret'],
                                    credentials['store_timeout'])
        else:
            logger.warning("no credential store configured, credentials are kept locally only")
        self.synchronizer = HybridCredentialSynchronizer(LocalCredentialCache(credentials['directory']), store)

        self.controller = ConnectionController(
            socket_factory or load_socket_factory(socket['factory']),
            self.synchronizer,
            retry_policy=apply_conf(retry, RetryPolicy()),
            disconnect_policy=DisconnectPolicy(retry['logged_out_code'], tuple(retry['auth_rejected_codes'])),
            sync_delay=credentials['sync_delay'],
            reconnect_delay=retry['reconnect_delay'],
            socket_options={'browser': list(socket['browser'])})
        if socket['print_qr']:
            self.controller.scan_tokens.add(log_scan_token)

        self.sender = OutboundSender(self.controller)
        processor = config['processor']
        self.relay = InboundMessageRelay(self.controller, self.sender,
                                         ProcessorClient(session, processor['url'], server['api_secret'],
                                                         processor['timeout']))
        self.controller.messages.add(self.relay.submit)
        self.api = ControlApi(self.controller, self.sender, server['api_secret'], server['server_name'])
        self.app = self.api.application()
        self._runner = None

    def start(self):
        """ starts the relay worker and the connection. """
        self.relay.start()
        self.controller.start()

    async def serve(self):
        server = self.config['server']
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, server['host'], server['port'])
        await site.start()
        logger.info("listening on %s:%d as %s" % (server['host'], server['port'], server['server_name']))

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        await self.relay.stop()
        await self.controller.stop()


async def run(config: ConfigObj):
    stopped = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stopped.set)
        except NotImplementedError:    # windows
            pass
    async with aiohttp.ClientSession() as session:
        bridge = Bridge(config, session)
        try:
            bridge.start()
            await bridge.serve()
            await stopped.wait()
            logger.info("shutting down")
        finally:
            await bridge.stop()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Bridges a messaging account to a processing service.')
    parser.add_argument('--config', help='a configuration file applied over the defaults')
    parser.add_argument('--port', type=int, help='the HTTP port, overriding the configuration')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    config = load_config('bridge', extra_file=args.config)
    if args.port:
        config['server']['port'] = args.port
    logging.basicConfig(level=config['logging']['level'], format=config['logging']['format'], style='{')
    asyncio.run(run(config))


if __name__ == '__main__':  # pragma no cover
    main()
