"""Vault-backed credential resolution and Nomad job submission for Traefik."""

VERSION = "0.1.0"
