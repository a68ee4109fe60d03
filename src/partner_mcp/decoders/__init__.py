"""Per-integration translators from tool output to domain records."""
