"""CLI Package"""
