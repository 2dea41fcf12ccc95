"""HTTP transport for the remote video generation API."""
