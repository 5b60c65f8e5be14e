"""Cross-cutting infrastructure: settings, logging, database, security and errors."""
