"""Architecture graph identity, diff and impact analysis for microservices."""

__version__ = "0.1.0"
