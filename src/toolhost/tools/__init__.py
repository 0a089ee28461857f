"""Built-in demonstration tools."""
