"""
Peerspace presence server.

A small real-time service that tracks who is connected to a shared 3D scene,
where their avatars are, what they are called, and relays WebRTC signaling
between pairs of peers.
"""

__version__ = "0.1.0"
