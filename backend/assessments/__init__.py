"""
ChartIQ assessment modules.
"""
