"""
Bridges a messaging account to a message processing service.

Notes
-----
- connection: the session lifecycle. Connects, follows the socket events, and reconnects after a
  disconnect with a backoff, discarding the credentials when they are no longer usable.
- credentials: the credential slots, cached locally and copied in the background to a durable store,
  from which they are restored when the local cache is empty.
- relay: received messages are forwarded to the processing service, and its replies sent back.
- sender: sends text and images through the open session.
- http: the control surface for status, QR scanning, sending and session management.
- connector: the interface to the protocol library. The socket factory is configured by import path.
"""
