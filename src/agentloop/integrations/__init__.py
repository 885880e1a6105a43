"""Cross-cutting integrations: cancellation, live inputs, logging and retry."""
