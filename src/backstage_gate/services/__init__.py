"""Service layer for the Backstage Gate engine."""
