"""Configuration paths for stackplan."""
