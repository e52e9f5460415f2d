"""dropwatch framework layer: cross-cutting service concerns (logging)."""
