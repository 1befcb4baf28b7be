"""Configuration: settings models, discovery, logging and process-wide state."""
