"""Nova HTTP routers."""
