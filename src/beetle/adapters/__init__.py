"""Backend adapters implementing the context handler port."""
