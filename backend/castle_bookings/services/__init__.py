"""Service layer for the booking core."""
