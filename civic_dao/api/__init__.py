"""HTTP routers: proposals, governance, users, health."""
