"""Output-cache service distribution root."""
