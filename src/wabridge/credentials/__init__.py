"""
Session credentials are a mapping of slot name to opaque bytes. The local cache is the copy the
protocol library works from; the durable store keeps a replica for recovery after a restart.
"""
