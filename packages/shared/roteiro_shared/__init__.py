"""Schemas shared between the Roteiro server and its clients."""
