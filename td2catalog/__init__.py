"""TD2 catalog API client."""
