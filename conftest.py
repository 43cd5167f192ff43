"""Keeps the project root importable (config, keeper, utils) when running pytest from a checkout."""
