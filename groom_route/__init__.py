"""GroomRoute - appointment routing and scheduling engine for mobile pet grooming."""

__version__ = "0.1.0"
