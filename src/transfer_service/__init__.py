"""Account-to-account transfer service."""
