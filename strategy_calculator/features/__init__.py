"""Pure calculation functions: no data fetching, no shared state."""
