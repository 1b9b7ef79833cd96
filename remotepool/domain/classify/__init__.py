"""
Error classification
"""
from .classifier import classify, classify_connect, classify_exception, describe
from .models import Classification, ErrorCategory, ErrorInfo

__all__ = [
    "Classification",
    "ErrorCategory",
    "ErrorInfo",
    "classify",
    "classify_connect",
    "classify_exception",
    "describe",
]
