"""Core: configuration, lifespan, composition and HTTP exception handling."""
