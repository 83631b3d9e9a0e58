"""Pure boss quiz logic (no Flask, no database)."""
