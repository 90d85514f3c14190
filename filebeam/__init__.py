"""FileBeam — share-code rendezvous and direct peer-to-peer file transfer."""

__version__ = "1.0.0"
