"""HTTP surface for the red-flag screening engine."""
