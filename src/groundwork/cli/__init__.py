"""groundwork command-line interface."""
