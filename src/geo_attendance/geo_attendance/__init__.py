"""Geo-fenced attendance package.

Organized by feature modules (geo, fraud, attendance, reporting) with a thin
Flask controller layer over async service/repository layers.
"""
