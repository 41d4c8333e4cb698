from .pipeline import TopologyVerifier

__all__ = ["TopologyVerifier"]
