"""Discovery of method directories in local checkouts and GitHub repositories."""
