"""MindCanvas - document engine for an infinite mind-map canvas."""

__version__ = "1.0.0"
