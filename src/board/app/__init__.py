"""Board view bootstrap / lifecycle."""
