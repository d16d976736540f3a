"""Follow a LibreLinkUp account and republish the latest glucose reading."""

__version__ = "0.1.0"
