"""Epilepsy diary: seizures, audited therapy plan, development checkpoints."""
