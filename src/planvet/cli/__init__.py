"""planvet command line interface."""
