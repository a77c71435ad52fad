"""FastAPI application module for CartRec.

This module contains the FastAPI application, route handlers, error types,
logging and metrics for the cart recommendation service.
"""
