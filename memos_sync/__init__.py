"""
Memos Sync — one-way synchronisation of Memos notes into a Markdown vault.

Pulls memos and their attachments from a Memos server, optionally enriches
each memo with an AI summary and tags, and writes every memo as a Markdown
document into a year/month folder tree.  Memos already present in the vault
are skipped.
"""

__version__ = "0.3.0"
