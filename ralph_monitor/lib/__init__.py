"""State engine: artifact loading, activity parsing, issues, translation."""
