"""Flashblocks vs normal-block confirmation race."""

__version__ = "0.1.0"
