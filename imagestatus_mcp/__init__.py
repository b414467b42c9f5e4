"""MCP server reporting the status of images in a content-addressed image store."""
