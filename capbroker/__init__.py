"""capbroker - dynamic capability registry for desktop automation."""

__version__ = "0.1.0"
