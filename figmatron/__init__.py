"""Figmatron: prompt-to-SVG request pipeline for design canvases."""

__version__ = "0.1.0"
