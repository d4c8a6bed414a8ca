"""Content hashing and the persistent optimization cache."""
