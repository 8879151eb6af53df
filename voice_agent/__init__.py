"""Voice conversation backend: speech in, synthesized speech out."""

__version__ = "1.0.0"
