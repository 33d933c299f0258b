"""External agent CLIs used by the monitor."""
