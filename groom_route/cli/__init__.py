"""Command-line interface for GroomRoute."""
