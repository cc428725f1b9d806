"""Monthly Sentinel-2 vegetation coverage statistics and overlay exports."""

__version__ = "0.1.0"
