"""Server-side session core: token codec, session and identity stores, service."""
