"""Runtime layers: sense, resolve and action."""
