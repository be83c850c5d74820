"""
Assignment Tracker backend package.

Assignments, deadline notifications and Google Calendar mirroring behind a
FastAPI application (see assignment_api.main).
"""
