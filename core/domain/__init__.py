"""Domain models, schema registry and error taxonomy."""
