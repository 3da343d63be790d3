"""Hotel price-monitoring and alert-dispatch engine."""

__version__ = "0.1.0"
