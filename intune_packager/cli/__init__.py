"""Command line interface for intune-packager"""
