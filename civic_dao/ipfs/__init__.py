from .client import IPFSPinner

__all__ = ["IPFSPinner"]
