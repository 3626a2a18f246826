"""
MediMind - Medical Document Assistant

Summarizes uploaded medical documents, answers questions about them with
a generate-verify-correct loop, and reads answers aloud. All model calls go
through a server-side gateway that holds the provider credential.

IMPORTANT: This is NOT a diagnosis tool. It must NEVER replace a doctor.
"""

__version__ = "1.0.0"
__author__ = "MediMind Team"
