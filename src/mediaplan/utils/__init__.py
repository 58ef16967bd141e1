"""Utility modules for mediaplan."""
