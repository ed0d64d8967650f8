"""HTTP API for the provisioner."""
