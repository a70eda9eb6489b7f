"""Settings, models and exceptions."""
