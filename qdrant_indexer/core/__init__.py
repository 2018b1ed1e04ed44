"""Settings, logging and the error taxonomy."""
