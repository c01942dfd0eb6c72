"""Framework-agnostic domain primitives."""
