"""Local (non-AI) processing rules."""
