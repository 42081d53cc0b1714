"""
SQLite persistence for conversations, usage events, user limits and users.
"""
