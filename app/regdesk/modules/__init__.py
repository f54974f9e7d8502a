"""Review modules. Each package owns its models, services and admin blueprint."""
