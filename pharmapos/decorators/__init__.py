"""Route decorators."""
