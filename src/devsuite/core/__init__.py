"""Core launcher infrastructure: exceptions and logging."""
