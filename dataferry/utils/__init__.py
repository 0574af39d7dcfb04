"""Utility modules for dataferry."""
