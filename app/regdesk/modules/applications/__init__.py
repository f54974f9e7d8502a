"""Business applications: query gateway, status normalization, presenters and decisions."""
