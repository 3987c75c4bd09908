"""Jinja2 templates for the text summary."""
