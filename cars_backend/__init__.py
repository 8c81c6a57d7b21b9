"""
CARS-G Backend - Community Incident Reporting API
=================================================

FastAPI service behind the CARS-G dashboards:
1. Citizens file safety reports with location and photos
2. Patrol officers investigate assigned reports
3. Administrators triage, moderate and award points
4. Everyone talks to the admins over a simple chat
"""

__version__ = "1.0.0"
