"""Pull-request review flow: GitHub metadata (github) and the sandboxed review (runner)."""
