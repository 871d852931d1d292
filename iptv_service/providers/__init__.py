"""Provider collaborators."""
