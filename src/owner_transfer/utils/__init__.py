"""Cross-cutting helpers: timing and retry decorators."""
