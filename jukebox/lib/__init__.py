"""Shared plumbing: config loading, media probing, audio sinks."""
