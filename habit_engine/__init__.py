"""
Habit streak and points engine.
"""
