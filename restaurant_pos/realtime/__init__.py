"""Realtime infrastructure (Socket.IO).

The server half of the order/table/menu event channel: handshake auth,
room membership and the publishers the REST layer calls after a write.
"""
