"""Silent Cinema domain services: task queue, state machine, sync and actions.

The queue builder and the state machine are pure and can be used without an
application context. ``sync`` and ``actions`` talk to the database and the
Socket.IO change feed.
"""
