"""Inventory movements - compound write validated for cross-entity ownership"""
