"""Chapter definitions, one directory per chapter."""
