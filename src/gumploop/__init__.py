"""gumploop: consensus-gated multi-agent development pipeline."""

__version__ = "0.1.0"
