"""Application services: evaluator, matcher, executor, engine and validation."""
