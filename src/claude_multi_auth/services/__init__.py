"""Request proxy, payload transformation and capability probing."""
