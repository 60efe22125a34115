"""Daily learning streaks."""
