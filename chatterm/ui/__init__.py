"""Terminal UI: line input, completion and rich rendering."""
