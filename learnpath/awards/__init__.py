"""Points, levels and achievements awarded on completion events."""
