"""Services used by the sync pipeline: remote client, AI providers, content and vault writers."""
