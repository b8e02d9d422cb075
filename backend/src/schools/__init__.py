"""School read endpoints"""
