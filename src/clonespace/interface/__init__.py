"""User-facing surfaces for clonespace."""
