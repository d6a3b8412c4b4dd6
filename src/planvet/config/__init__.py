"""Configuration constants for planvet."""
