"""API package — HTTP presentation surface."""
