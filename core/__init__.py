"""Core domain logic: AI generation and pull-request review."""
