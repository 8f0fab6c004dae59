"""Search history: bounded, most-recent-first store of past searches and their results."""
