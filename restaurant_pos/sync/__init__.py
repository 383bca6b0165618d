"""Client-side realtime synchronization.

Waiter stations, the kitchen display and dashboards use this package to keep
local copies of orders, tables and menu items consistent with the server.
Nothing here touches the ORM; the server pushes authoritative entities over
Socket.IO and the reconcilers fold them into in-memory collections.
"""
