"""Persistence for the token authority: users, token families and revoked access tokens."""
