"""Business logic behind the subscription endpoints."""
