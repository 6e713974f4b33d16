"""Core modules: config, proxy, upstream client, auth and server lifecycle."""
