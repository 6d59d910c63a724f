"""Configuration of metrics registries at the moment they become available."""

__version__ = "0.1.0"
