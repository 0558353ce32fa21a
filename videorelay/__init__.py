"""Backend relay for remote video generation jobs."""

__version__ = "0.1.0"
