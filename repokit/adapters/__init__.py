"""Storage engine adapters for repokit."""
