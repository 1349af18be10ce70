"""Auth & User Service: user CRUD with Google login and JWT bearer auth."""

__version__ = "1.0.0"
