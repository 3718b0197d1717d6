"""Authentication.

Users sign up with name/email/password and get JWT access + refresh
tokens. Every other operation resolves the bearer token to a User through
the IdentityDirectory; no token (or a bad one) means Unauthenticated.
"""
