"""
Shuttle: Encrypted Stop-and-Wait File Transfer over TCP

This package moves a single file between two peers with:
- fixed-size binary frames (START / DATA / END)
- AES-256 encryption of every frame
- a two-channel stop-and-wait handshake (data port + ack port)
"""

__version__ = "0.1.0"

from .node import Peer, create_peer
from .config import ShuttleConfig, load_config

__all__ = ['Peer', 'create_peer', 'ShuttleConfig', 'load_config']
