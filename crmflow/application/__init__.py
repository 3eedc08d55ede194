"""Application layer: engine services, ports (protocols) and DTOs."""
