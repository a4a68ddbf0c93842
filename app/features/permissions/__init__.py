"""
Permission management feature module.

Implements role-based access control for CRM records: a catalog of protected
objects with levels and scopes, roles holding permission atoms, and the
per-resource access decision.
"""
