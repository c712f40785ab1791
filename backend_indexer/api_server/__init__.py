"""HTTP surface: webhook receipt, job provisioning, probes."""
