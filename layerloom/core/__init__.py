"""Core graph model: layer catalogue and connection graph."""
