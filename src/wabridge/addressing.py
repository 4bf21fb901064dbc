"""
Network addresses have the form ``user[:device]@domain``.

Individual accounts are addressed either by phone number (``@s.whatsapp.net``) or by an opaque
linked identity (``@lid``). Groups (``@g.us``) and broadcast lists (``@broadcast``) are not relayed.
"""
import re

USER_DOMAIN = 's.whatsapp.net'
LID_DOMAIN = 'lid'
GROUP_DOMAIN = 'g.us'
BROADCAST_DOMAIN = 'broadcast'

CANONICAL_DOMAINS = (USER_DOMAIN, LID_DOMAIN)

_non_digits = re.compile(r'\D')


class InvalidAddressError(ValueError):
    """ The address cannot be turned into one messages can be sent to. """


def split_address(address):
    """
    Splits an address into its user, device and domain parts.

    >>> split_address('5215512345678:12@s.whatsapp.net')
    ('5215512345678', '12', 's.whatsapp.net')
    >>> split_address('5215512345678')
    ('5215512345678', None, None)
    """
    user, sep, domain = address.partition('@')
    user, _, device = user.partition(':')
    return user, device or None, domain if sep else None


def is_group(address):
    return split_address(address or '')[2] == GROUP_DOMAIN


def is_broadcast(address):
    return split_address(address or '')[2] == BROADCAST_DOMAIN


def phone_id(address):
    """
    Reduces an address to a phone-like identifier: the digits of the user part.

    >>> phone_id('5215512345678:3@s.whatsapp.net')
    '5215512345678'
    >>> phone_id('+52 1 55 1234 5678')
    '5215512345678'
    """
    user = split_address(address)[0]
    return _non_digits.sub('', user)


def canonical_address(address):
    """
    Converts a phone number or an address into the canonical form used to send messages.
    Addresses already in canonical form are returned unchanged.

    >>> canonical_address('+52 55 1234 5678')
    '525512345678@s.whatsapp.net'
    >>> canonical_address('525512345678@s.whatsapp.net')
    '525512345678@s.whatsapp.net'
    >>> canonical_address('99887766@lid')
    '99887766@lid'
    """
    address = (address or '').strip()
    domain = split_address(address)[2]
    if domain in CANONICAL_DOMAINS:
        return address
    if domain is not None:
        raise InvalidAddressError("cannot send to address '%s'" % address)
    digits = _non_digits.sub('', address)
    if not digits:
        raise InvalidAddressError("invalid phone number '%s'" % address)
    return digits + '@' + USER_DOMAIN


def sender_address(key):
    """
    Determines the address that sent a message, given the message key.

    Senders addressed by a linked identity are resolved to their phone-number address when the key
    carries one.
    """
    remote = key.get('remoteJid') or ''
    if split_address(remote)[2] == LID_DOMAIN:
        for alternative in (key.get('senderPn'), key.get('remoteJidAlt')):
            if alternative and split_address(alternative)[2] == USER_DOMAIN:
                return alternative
    return remote
