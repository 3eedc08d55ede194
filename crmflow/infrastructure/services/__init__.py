"""Infrastructure services: notification delivery and template rendering."""
