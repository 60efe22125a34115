"""Per-content progress records."""
