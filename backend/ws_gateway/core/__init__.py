"""Gateway internals: the per-connection send path."""
