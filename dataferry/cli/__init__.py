"""Command line interface for dataferry."""
