"""bulb.social gateway: relays image uploads to IPFS and posts to OrbitDB."""

__version__ = "0.1.0"
