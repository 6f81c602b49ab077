"""Developer tools: diagrams."""
