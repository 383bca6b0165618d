"""Publishers for order, table, menu and payment changes.

Each module turns a changed entity into one Socket.IO event and picks the
rooms that should see it. Server setup and handshake handling stay in
``restaurant_pos.realtime.socketio``.
"""
