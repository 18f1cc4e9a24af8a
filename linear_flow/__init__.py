"""linear-flow: linear-history feature branch workflow automation."""

__version__ = "0.1.0"
