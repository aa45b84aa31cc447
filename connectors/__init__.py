"""
connectors — links local accounts to accounts at OAuth service providers.

Provides a generic connect flow that handles:
  • OAuth1 (1.0 and 1.0a) request-token / authorize / access-token legs
  • OAuth2 authorization-code redirect and exchange
  • Pluggable custom auth schemes
  • Per-session caching of the in-flight request token and flash notices
  • Idempotent storage and removal of the resulting connections

Each provider (GitHub, Google, Twitter, …) is a ConnectionFactory subclass.
"""
