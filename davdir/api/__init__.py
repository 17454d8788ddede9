"""HTTP API blueprints for the directory."""
