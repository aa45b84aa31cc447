"""
auth — Account identity for the connect flow.

Provides:
  • Signed token creation & verification
  • Session login / logout API routes
  • ``get_current_user_id`` FastAPI dependency
"""
