"""Assessment Lifecycle Service - soft delete, restore, purge and wellness snapshots."""
