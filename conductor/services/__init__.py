"""External collaborators: identity, storage, video platform, persistence."""
