"""ContestRadar pipeline applications."""
