"""Core infrastructure shared by the metrics components."""
