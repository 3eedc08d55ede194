"""Infrastructure: persistence, scheduler runner and outbound service adapters."""
