"""
The HTTP control surface.

All routes except /health require an ``Authorization: Bearer <api secret>`` header.
"""
import datetime
import hmac
import logging

from aiohttp import web

from wabridge.addressing import InvalidAddressError
from wabridge.connection import ConnectionController
from wabridge.qr import render_data_uri
from wabridge.sender import OutboundSender

logger = logging.getLogger(__name__)

public_paths = ('/health',)


def error_response(message, status=500):
    return web.json_response({'error': message}, status=status)


class ControlApi:
    """
    :param controller   the ConnectionController
    :param sender       the OutboundSender
    :param api_secret   the bearer token callers must present
    :param server_name  reported by /health
    """

    def __init__(self, controller: ConnectionController, sender: OutboundSender, api_secret, server_name,
                 qr_renderer=render_data_uri):
        self.controller = controller
        self.sender = sender
        self.api_secret = api_secret
        self.server_name = server_name
        self.qr_renderer = qr_renderer

    def application(self) -> web.Application:
        app = web.Application(middlewares=[self.authenticate])
        app.router.add_get('/health', self.health)
        app.router.add_get('/api/status', self.status)
        app.router.add_get('/api/qr', self.qr)
        app.router.add_post('/api/send', self.send)
        app.router.add_post('/api/send-image', self.send_image)
        app.router.add_post('/api/logout', self.logout)
        app.router.add_post('/api/reconnect', self.reconnect)
        app.router.add_post('/api/clear-session', self.clear_session)
        app.router.add_post('/api/sync-credentials', self.sync_credentials)
        return app

    @web.middleware
    async def authenticate(self, request, handler):
        if request.path not in public_paths:
            expected = 'Bearer %s' % self.api_secret
            supplied = request.headers.get('Authorization', '')
            if not hmac.compare_digest(supplied.encode('utf-8'), expected.encode('utf-8')):
                return error_response('Unauthorized', 401)
        return await handler(request)

    async def health(self, request):
        state = self.controller.state
        return web.json_response({
            'status': 'ok',
            'timestamp': datetime.datetime.now(datetime.timezone.utc).isoformat(),
            'whatsapp': state.phase.value,
            'reconnectAttempts': state.reconnect_attempts,
            'serverName': self.server_name,
        })

    async def status(self, request):
        state = self.controller.state
        return web.json_response({
            'status': state.phase.value,
            'phone': state.identity,
            'hasQR': state.scan_token is not None,
        })

    async def qr(self, request):
        state = self.controller.state
        if state.connected:
            return web.json_response({'status': 'already_connected', 'phone': state.identity})
        token = state.scan_token
        if token is None:
            return web.json_response({'status': 'waiting',
                                      'message': 'QR not ready yet, try again in a few seconds'})
        return web.json_response({'status': 'qr_ready', 'qr': self.qr_renderer(token)})

    async def _json_body(self, request):
        try:
            body = await request.json()
        except ValueError:
            raise web.HTTPBadRequest(text='{"error": "invalid JSON body"}', content_type='application/json')
        if not isinstance(body, dict):
            raise web.HTTPBadRequest(text='{"error": "JSON object expected"}', content_type='application/json')
        return body

    async def send(self, request):
        body = await self._json_body(request)
        phone, message = body.get('phone'), body.get('message')
        if not phone or not message:
            return error_response('phone and message required', 400)
        return await self._deliver(self.sender.send(str(phone), message))

    async def send_image(self, request):
        body = await self._json_body(request)
        phone, url = body.get('phone'), body.get('imageUrl')
        if not phone or not url:
            return error_response('phone and imageUrl required', 400)
        return await self._deliver(self.sender.send_image(str(phone), url, body.get('caption')))

    async def _deliver(self, sending):
        try:
            await sending
        except InvalidAddressError as e:
            return error_response(str(e), 400)
        except Exception as e:
            logger.warning("send failed: %s" % e)
            return error_response(str(e))
        return web.json_response({'success': True})

    async def logout(self, request):
        try:
            await self.controller.logout()
        except Exception as e:
            logger.warning("logout failed: %s" % e)
            return error_response(str(e))
        return web.json_response({'success': True})

    async def reconnect(self, request):
        try:
            await self.controller.reconnect()
        except Exception as e:
            logger.warning("reconnect failed: %s" % e)
            return error_response(str(e))
        return web.json_response({'success': True, 'message': 'Reconnecting...'})

    async def clear_session(self, request):
        try:
            await self.controller.clear_session()
        except Exception as e:
            logger.warning("clearing session failed: %s" % e)
            return error_response(str(e))
        return web.json_response({'success': True})

    async def sync_credentials(self, request):
        try:
            slots = await self.controller.synchronizer.push_now()
        except Exception as e:
            logger.warning("credential sync failed: %s" % e)
            return error_response(str(e))
        return web.json_response({'success': True, 'slots': slots})
