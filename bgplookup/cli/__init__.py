"""Command-line entry points for bgplookup."""
