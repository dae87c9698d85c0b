"""Reconciliation services and API clients"""
