"""
Renders scan tokens as QR codes.
"""
import base64
import io
import logging

import qrcode
import qrcode.image.svg

logger = logging.getLogger(__name__)


def render_data_uri(token):
    """
    :return: the token as an SVG QR code, in a data URI suitable for an <img> src attribute.
    """
    image = qrcode.make(token, image_factory=qrcode.image.svg.SvgPathImage)
    buffer = io.BytesIO()
    image.save(buffer)
    return 'data:image/svg+xml;base64,' + base64.b64encode(buffer.getvalue()).decode('ascii')


def render_text(token):
    """ :return: the token as a QR code drawn with text characters. """
    code = qrcode.QRCode(border=1)
    code.add_data(token)
    code.make(fit=True)
    out = io.StringIO()
    code.print_ascii(out=out, invert=True)
    return out.getvalue()


def log_scan_token(token):
    """ writes the scan token as a QR code to the log, for scanning from a terminal. """
    logger.info("scan this code to link the device:\n%s" % render_text(token))
