"""Per-instrument mixing rule tables (YAML), read by core/mixer/_profile_loader.py."""
