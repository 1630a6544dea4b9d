"""Menu engine: registry, callback codec, rendering and dispatch."""
