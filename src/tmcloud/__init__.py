"""
tmcloud -- cloud backup and sync for TypingMind application data.

Keeps the local dataset (chats, settings, folders, favorites) consistent
with an object store, optionally encrypted, with one serialized lane
for every mutation.
"""

import os

__version__ = "0.1.0"

TMCLOUD_HOME = os.environ.get("TMCLOUD_HOME", "~/.tmcloud")
