"""Fan-out server — Redis SUBSCRIBE → every open WebSocket.

Learn: Events flow through two hops here:
1. BusSubscriber reads the relay's Redis channel (supervised, self-healing)
2. FanoutBroadcaster forwards each message verbatim to every client
   in the ClientRegistry

Redis pub/sub is fire-and-forget. While the subscriber is reconnecting,
messages are lost and clients simply receive nothing until it is back.
"""
