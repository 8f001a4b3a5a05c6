"""Pure domain layer: states, selection, permissions, patches, clock."""
