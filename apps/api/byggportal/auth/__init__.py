"""Auth module - token verification and user profiles."""
