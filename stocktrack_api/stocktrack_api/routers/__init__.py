"""HTTP routers for the subscription API."""
