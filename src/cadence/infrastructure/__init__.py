"""Infrastructure layer: persistence, server integrations and observability."""
