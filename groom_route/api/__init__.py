"""HTTP API for the GroomRoute engine."""
