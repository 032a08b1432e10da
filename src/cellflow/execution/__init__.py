"""Cell execution against a text-generation provider."""
