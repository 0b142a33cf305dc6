"""Chat protocol codec, errors and logging shared by the client."""
