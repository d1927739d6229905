"""Assessment Lifecycle Service - Services"""
