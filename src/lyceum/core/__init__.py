"""Cross-cutting plumbing: config, logging, metrics, errors, event bus."""
