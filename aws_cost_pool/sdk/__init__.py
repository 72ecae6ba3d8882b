"""
SDK integrations for AWS Cost Pool.

Provides optional parsers backed by external services.
"""

from .openai_parser import OpenAIInvoiceParser

__all__ = ["OpenAIInvoiceParser"]
