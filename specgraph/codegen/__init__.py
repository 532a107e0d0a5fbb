"""Code generation - step definitions and staleness checks."""
