"""HTTP routes for push-delivered notifications."""
