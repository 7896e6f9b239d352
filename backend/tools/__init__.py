"""Nova tools - tool registry and built-in tool modules."""
