"""Deck composition pipeline: free-text intent to an exactly-sized, structurally valid deck."""

from composer.engine.pipeline_compose import compose

__all__ = ["compose"]
