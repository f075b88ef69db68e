"""Real-time infrastructure — connection registry + broadcast dispatch.

Learn: Events flow through two pieces:
1. ConnectionRegistry — which live WebSocket is bound to which channel
2. BroadcastDispatcher — one snapshot of the registry per event, one send
   per matching connection

The WebSocket endpoint owns the sockets; the registry only remembers them.
"""
