"""Edge forecast inference service."""
