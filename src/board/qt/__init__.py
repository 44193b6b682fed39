"""PyQt6 adapters (imported explicitly; the engine itself has no Qt dependency)."""
