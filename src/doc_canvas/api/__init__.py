"""rest api for the canvas frontend."""
