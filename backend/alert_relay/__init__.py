"""Device error alert relay."""
