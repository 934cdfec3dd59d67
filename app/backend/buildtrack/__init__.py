"""Progress propagation and portfolio analytics backend."""
