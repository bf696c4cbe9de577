"""Client for the DNAnexus platform API with a retrying request executor."""

__version__ = "0.1.0"
