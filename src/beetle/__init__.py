"""Backend-agnostic save/query gateway."""
