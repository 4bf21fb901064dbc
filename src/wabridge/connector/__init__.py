"""
The messaging-network protocol library is consumed through the SessionSocket abstraction.
A socket factory creates a socket from the current credential set; the socket reports
its lifecycle and inbound traffic as SocketEvent instances.
"""
