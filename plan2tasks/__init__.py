"""Plan2Tasks: planner invites, Google OAuth connections and task delivery."""

__version__ = "0.1.0"
