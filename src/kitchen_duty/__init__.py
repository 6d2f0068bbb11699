"""
Kitchen Duty Planner

A desktop application for rotating weekly kitchen duty among employees,
with lockable assignments, a planning log, and calendar hand-off via ICS
files, mail links, Outlook Web and Outlook Desktop meeting requests.
"""

__version__ = "1.0.0"
