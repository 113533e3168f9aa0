"""Context-aware card field generation service."""
