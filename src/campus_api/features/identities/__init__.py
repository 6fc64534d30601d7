"""Identity lookups and deletion."""
