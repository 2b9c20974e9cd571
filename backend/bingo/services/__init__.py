"""Bingo domain services: boards, scoring, timers and the session engine.

This package contains the session logic that socket handlers and HTTP
routes call into, keeping transport concerns separated from core game
mechanics.
"""
