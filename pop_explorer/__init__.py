"""Population Buffer Explorer: live population counts for buffers and drawn regions."""

__version__ = "2.2.0"
