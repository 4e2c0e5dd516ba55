"""Star Oracle: a steady eye on near-Earth space."""

__version__ = "1.0.0"
