"""Application layer: request contracts and the service context."""
