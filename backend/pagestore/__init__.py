"""Page Store — fetch-and-cache layer for external web pages."""
