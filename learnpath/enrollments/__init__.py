"""Module enrollment lifecycle and aggregation."""
