"""codesearch — semantic code search over locally indexed workspaces."""
