"""Multi-tenant clinic management API."""
