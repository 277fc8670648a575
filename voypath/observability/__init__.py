"""Request tracing helpers."""
