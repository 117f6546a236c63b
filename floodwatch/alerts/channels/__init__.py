"""
channels — Notification delivery backends.

Each channel exposes:
    broadcast(alert, audience, message) → BroadcastResult

Channels are fire-and-forget. The engine wraps every call in
``broadcast_safely`` and never retries.
"""
