"""Domain logic: models, sync gateway, request handling and client state."""
