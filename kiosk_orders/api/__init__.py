"""HTTP API for the kiosk order backend."""
