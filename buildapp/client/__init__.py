"""Browser-side modules bundled into hot reload builds."""
