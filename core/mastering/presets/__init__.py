"""Mastering threshold tables (YAML), read by core/mastering/_preset_loader.py."""
