"""Infrastructure layer - persistence and outbound integrations."""
