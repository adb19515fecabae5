"""AgeForge civilization progression simulation."""
