"""CLI helpers: output rendering and form validation."""
