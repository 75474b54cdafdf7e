"""Pure receipt parsing: money, heuristic extraction, validation and decisions."""
