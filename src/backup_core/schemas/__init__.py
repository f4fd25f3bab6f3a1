"""JSON schemas for group backup configuration files.

This package contains JSON Schema files for validating configuration:
- backup_config.schema.json: output roots, collections, acquisition and browser settings
- units.schema.json: one extracted unit (post) from the units queue
"""
