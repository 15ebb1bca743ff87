"""Command-line front end for infra-harness."""
