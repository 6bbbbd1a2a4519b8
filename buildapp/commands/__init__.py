"""Long-running buildapp commands: watch machinery and the dev server."""
