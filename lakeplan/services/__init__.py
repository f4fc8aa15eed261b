"""Service layer: plan compilation and pipeline coordination."""
